"""
Training script for the digit CNN used by the stroke recogniser
Trains on MNIST, reports accuracy and saves the model the GUI loads
"""

import argparse
import os

import numpy as np
import matplotlib.pyplot as plt
import seaborn as sns
from sklearn.model_selection import train_test_split

from .constants import DEFAULT_MODEL_PATH, LABELS
from .data_loader import MNISTDataLoader
from .models import CNNModel


def plot_confusion_matrix(cm, class_names=LABELS, save_path=None):
    """Heatmap of a confusion matrix"""
    fig, ax = plt.subplots(figsize=(8, 6))
    sns.heatmap(cm, annot=True, fmt='d', cmap='Blues',
                xticklabels=class_names, yticklabels=class_names, ax=ax)
    ax.set_title('Digit CNN - Confusion Matrix')
    ax.set_xlabel('Predicted')
    ax.set_ylabel('True')
    plt.tight_layout()
    if save_path:
        fig.savefig(save_path)
        plt.close(fig)
    else:
        plt.show()


def train_digit_model(source='keras', data_dir='MNIST_CSV', epochs=10, batch_size=128,
                      model_path=DEFAULT_MODEL_PATH, plots_dir=None):
    """Train, evaluate and save the digit CNN

    Returns:
        dict: evaluation results from CNNModel.evaluate
    """
    print("=" * 60)
    print("STROKE DIGIT RECOGNITION - MODEL TRAINING")
    print("=" * 60)

    print("\n1. Loading data...")
    loader = MNISTDataLoader(source=source, data_dir=data_dir)
    loader.load_data()
    distribution = loader.get_class_distribution()
    print("Training samples per digit: " +
          ", ".join(f"{label}={count}" for label, count in distribution['train'].items()))
    X_train, y_train, X_test, y_test = loader.preprocess_data()

    X_train, X_val, y_train, y_val = train_test_split(
        X_train, y_train, test_size=0.1, random_state=42, stratify=y_train
    )
    print(f"Training data: {X_train.shape}")
    print(f"Validation data: {X_val.shape}")

    print("\n2. Training CNN...")
    cnn = CNNModel()
    cnn.train(X_train, y_train, X_val, y_val, epochs=epochs, batch_size=batch_size)

    print("\n3. Evaluating...")
    results = cnn.evaluate(X_test, y_test)
    print(f"Test accuracy: {results['accuracy']:.4f}")
    print(results['classification_report'])

    print("\n4. Saving model...")
    cnn.save_model(model_path)
    print(f"Saved model to {model_path}")

    if plots_dir:
        os.makedirs(plots_dir, exist_ok=True)
        cnn.plot_training_history(os.path.join(plots_dir, 'training_history.png'))
        plot_confusion_matrix(results['confusion_matrix'],
                              save_path=os.path.join(plots_dir, 'confusion_matrix.png'))

    return results


def quick_test(model_path=None):
    """Train for one epoch on random data to check the pipeline end to end"""
    print("Running quick test with random data...")
    X = np.random.random((500, 28, 28, 1)).astype(np.float32)
    y = np.random.randint(0, len(LABELS), 500)

    cnn = CNNModel(use_augmentation=False)
    cnn.train(X[:400], y[:400], epochs=1, batch_size=32)
    results = cnn.evaluate(X[400:], y[400:])
    print(f"Quick test accuracy (random labels): {results['accuracy']:.4f}")
    if model_path:
        cnn.save_model(model_path)
        print(f"Saved model to {model_path}")
    return results


def main(argv=None):
    parser = argparse.ArgumentParser(description="Train the stroke recogniser digit CNN")
    parser.add_argument("--quick-test", action="store_true", help="Run a quick random-data test")
    parser.add_argument("--source", choices=["keras", "mnist_csv"], default="keras",
                        help="Where to read MNIST from")
    parser.add_argument("--data-dir", type=str, default="MNIST_CSV",
                        help="Directory holding mnist_train.csv and mnist_test.csv")
    parser.add_argument("--epochs", type=int, default=10, help="Training epochs")
    parser.add_argument("--batch-size", type=int, default=128, help="Training batch size")
    parser.add_argument("--model-path", type=str, default=DEFAULT_MODEL_PATH,
                        help="Where to save the trained model")
    parser.add_argument("--plots-dir", type=str, default=None,
                        help="Save training curves and confusion matrix here")
    args = parser.parse_args(argv)

    if args.quick_test:
        quick_test()
        return 0

    try:
        train_digit_model(source=args.source, data_dir=args.data_dir, epochs=args.epochs,
                          batch_size=args.batch_size, model_path=args.model_path,
                          plots_dir=args.plots_dir)
    except FileNotFoundError as e:
        print(f"\nError: {e}")
        print(f"Expected mnist_train.csv and mnist_test.csv in: {args.data_dir}")
        print("Run with '--source keras' to download MNIST instead")
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
