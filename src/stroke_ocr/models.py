"""
Digit model for the stroke recogniser.

``CNNModel`` builds, trains and persists the Keras network. ``DigitClassifier``
is what the rest of the application talks to: it owns a loaded model, guards
it behind an explicit readiness state and exposes a probability ``predict``.
"""

from __future__ import annotations

import enum
import os
import threading
from typing import Any, Callable, List, Optional

import numpy as np
import matplotlib.pyplot as plt
from sklearn.metrics import accuracy_score, classification_report, confusion_matrix

from .constants import DEFAULT_MODEL_PATH, INPUT_SHAPE, LABELS

# TensorFlow is only needed for the CNN itself; the tracker, preprocessing
# and tests run without it.
try:
    import tensorflow as tf  # type: ignore
    from tensorflow import keras  # type: ignore
    from tensorflow.keras import layers  # type: ignore
    _TF_AVAILABLE = True
    _TF_IMPORT_ERROR = None
except Exception as _e:  # pragma: no cover - environment dependent
    tf = None  # type: ignore
    keras = None  # type: ignore
    layers = None  # type: ignore
    _TF_AVAILABLE = False
    _TF_IMPORT_ERROR = _e


def tensorflow_available() -> bool:
    return _TF_AVAILABLE


def _ensure_tf() -> None:
    if not _TF_AVAILABLE:
        raise ImportError(
            "TensorFlow is required for the digit CNN but is not available. "
            f"Import error: {_TF_IMPORT_ERROR}"
        )


class CNNModel:
    """Convolutional Neural Network for digit recognition"""

    def __init__(self, input_shape=INPUT_SHAPE, num_classes=len(LABELS),
                 use_augmentation: bool = True,
                 class_names: Optional[List[str]] = None):
        self.input_shape = input_shape
        self.num_classes = int(num_classes)
        self.model = None
        self.history = None
        self.use_augmentation = use_augmentation
        self.class_names = class_names if class_names is not None else list(LABELS)

    def build_model(self):
        """Build CNN architecture for 28x28 single-channel digits"""
        _ensure_tf()
        aug_layers = []
        if self.use_augmentation:
            # Active only during training; inference sees the raw patch
            aug_layers = [
                layers.Input(shape=self.input_shape),
                layers.RandomRotation(0.08),
                layers.RandomTranslation(0.05, 0.05),
                layers.RandomZoom(0.10),
            ]

        self.model = keras.Sequential([
            *(aug_layers or [layers.Input(shape=self.input_shape)]),
            layers.Conv2D(32, (3, 3), activation='relu'),
            layers.MaxPooling2D((2, 2)),
            layers.Conv2D(64, (3, 3), activation='relu'),
            layers.MaxPooling2D((2, 2)),
            layers.Flatten(),
            layers.Dense(128, activation='relu'),
            layers.Dropout(0.3),
            layers.Dense(self.num_classes, activation='softmax'),
        ])

        self.model.compile(
            optimizer='adam',
            loss='sparse_categorical_crossentropy',
            metrics=['accuracy']
        )
        return self.model

    def train(self, X_train, y_train, X_val=None, y_val=None, epochs=10, batch_size=128):
        """Train the CNN model"""
        _ensure_tf()
        if self.model is None:
            self.build_model()

        callbacks = [
            keras.callbacks.EarlyStopping(patience=3, restore_best_weights=True),
            keras.callbacks.ReduceLROnPlateau(factor=0.5, patience=2),
        ]
        validation_data = (X_val, y_val) if X_val is not None else None

        self.history = self.model.fit(
            X_train, y_train,
            batch_size=batch_size,
            epochs=epochs,
            validation_data=validation_data,
            callbacks=callbacks if validation_data is not None else None,
            verbose=1
        )
        return self.history

    def evaluate(self, X_test, y_test):
        """Evaluate model performance"""
        if self.model is None:
            raise ValueError("Model not trained yet!")

        y_pred_proba = np.asarray(self.model.predict(X_test, verbose=0))
        y_pred = np.argmax(y_pred_proba, axis=1)

        return {
            'accuracy': accuracy_score(y_test, y_pred),
            'predictions': y_pred,
            'probabilities': y_pred_proba,
            'classification_report': classification_report(
                y_test, y_pred, labels=list(range(self.num_classes)),
                target_names=self.class_names, zero_division=0
            ),
            'confusion_matrix': confusion_matrix(
                y_test, y_pred, labels=list(range(self.num_classes))
            ),
        }

    def save_model(self, filepath):
        """Save trained model"""
        _ensure_tf()
        if self.model is None:
            raise ValueError("No model to save!")
        directory = os.path.dirname(filepath)
        if directory:
            os.makedirs(directory, exist_ok=True)
        self.model.save(filepath)

    def load_model(self, filepath):
        """Load trained model"""
        _ensure_tf()
        if not os.path.exists(filepath):
            raise FileNotFoundError(f"Model file not found: {filepath}")
        self.model = keras.models.load_model(filepath)

    def predict(self, X):
        """Return class probabilities for a batch of 28x28x1 patches"""
        if self.model is None:
            raise ValueError("Model not trained or loaded yet!")

        X = np.asarray(X, dtype=np.float32)
        if X.ndim == 2:
            X = X.reshape(1, X.shape[0], X.shape[1], 1)
        elif X.ndim == 3:
            X = X.reshape(1, *X.shape) if X.shape[-1] == 1 else X[..., None]
        elif X.ndim != 4:
            raise ValueError(f"Unexpected input shape for CNN predict: {X.shape}")

        return np.asarray(self.model.predict(X, verbose=0))

    def plot_training_history(self, save_path=None):
        """Plot training history"""
        if self.history is None:
            print("No training history available!")
            return

        fig, (ax1, ax2) = plt.subplots(1, 2, figsize=(12, 4))

        ax1.plot(self.history.history['accuracy'], label='Training Accuracy')
        if 'val_accuracy' in self.history.history:
            ax1.plot(self.history.history['val_accuracy'], label='Validation Accuracy')
        ax1.set_title('Model Accuracy')
        ax1.set_xlabel('Epoch')
        ax1.set_ylabel('Accuracy')
        ax1.legend()

        ax2.plot(self.history.history['loss'], label='Training Loss')
        if 'val_loss' in self.history.history:
            ax2.plot(self.history.history['val_loss'], label='Validation Loss')
        ax2.set_title('Model Loss')
        ax2.set_xlabel('Epoch')
        ax2.set_ylabel('Loss')
        ax2.legend()

        plt.tight_layout()
        if save_path:
            fig.savefig(save_path)
            plt.close(fig)
        else:
            plt.show()


class ModelState(enum.Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"


def load_cnn(model_path: str = DEFAULT_MODEL_PATH) -> CNNModel:
    """Load a saved digit CNN from disk."""
    cnn = CNNModel(use_augmentation=False)
    cnn.load_model(model_path)
    print(f"Loaded digit model from {model_path}")
    return cnn


class DigitClassifier:
    """
    Readiness-gated wrapper around a digit model.

    ``initialize`` may be called exactly once. It moves the classifier from
    UNINITIALIZED through INITIALIZING to READY, or to FAILED when loading
    or warm-up raises (the error is re-raised). ``predict`` only works once
    READY.

    ``loader`` returns any object with ``predict(batch) -> probabilities``;
    by default the Keras CNN at ``model_path`` is loaded.
    """

    def __init__(
        self,
        model_path: str = DEFAULT_MODEL_PATH,
        loader: Optional[Callable[[], Any]] = None,
        labels: Optional[List[str]] = None,
    ) -> None:
        self.model_path = model_path
        self.labels = list(labels) if labels is not None else list(LABELS)
        self._loader = loader or (lambda: load_cnn(self.model_path))
        self._model: Any = None
        self._state = ModelState.UNINITIALIZED
        self._lock = threading.Lock()
        self.error: Optional[BaseException] = None

    @property
    def state(self) -> ModelState:
        with self._lock:
            return self._state

    @property
    def is_ready(self) -> bool:
        return self.state is ModelState.READY

    def _transition(self, expected: ModelState, new: ModelState) -> None:
        with self._lock:
            if self._state is not expected:
                raise RuntimeError(
                    f"Cannot move digit classifier from {self._state.value} to {new.value}"
                )
            self._state = new

    def initialize(self) -> "DigitClassifier":
        """Load and warm up the model; only allowed from UNINITIALIZED."""
        self._transition(ModelState.UNINITIALIZED, ModelState.INITIALIZING)
        try:
            model = self._loader()
            # Warm up once so the first real prediction is not the slow one
            model.predict(np.zeros((1, *INPUT_SHAPE), dtype=np.float32))
        except Exception as exc:
            self.error = exc
            self._transition(ModelState.INITIALIZING, ModelState.FAILED)
            raise
        self._model = model
        self._transition(ModelState.INITIALIZING, ModelState.READY)
        print("Digit model warmed up.")
        return self

    def predict(self, batch: np.ndarray) -> np.ndarray:
        """Probability distribution over the labels for each patch in ``batch``."""
        if not self.is_ready:
            raise RuntimeError(f"Digit classifier is {self.state.value}, not ready")
        probs = np.asarray(self._model.predict(batch), dtype=np.float32)
        if probs.ndim == 1:
            probs = probs.reshape(1, -1)
        return probs
