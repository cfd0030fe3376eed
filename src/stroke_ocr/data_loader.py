"""
Data loading for training the digit model

Two sources share one API:
- keras: the MNIST copy bundled with Keras (downloaded on first use)
- mnist_csv: mnist_train.csv / mnist_test.csv with the label in column 0

load_data() -> (X_train, y_train, X_test, y_test), pixels 0..255
preprocess_data() -> same tuple, float32 in [0, 1], shaped for the CNN
"""

import os

import numpy as np
import pandas as pd

from .constants import LABELS, TARGET_SIZE


class MNISTDataLoader:
    """
    Handles loading and preprocessing of MNIST data
    """

    def __init__(self, source="keras", data_dir="MNIST_CSV"):
        """
        Args:
            source (str): 'keras' or 'mnist_csv'
            data_dir (str): Directory containing the MNIST CSV files
        """
        if source not in ("keras", "mnist_csv"):
            raise ValueError(f"Unknown MNIST source: {source}")
        self.source = source
        self.data_dir = data_dir
        self.X_train = None
        self.y_train = None
        self.X_test = None
        self.y_test = None
        self.class_names = list(LABELS)

    def load_data(self):
        """
        Load MNIST data

        Returns:
            tuple: (X_train, y_train, X_test, y_test), images flattened to 784 columns
        """
        if self.source == "keras":
            self._load_keras()
        else:
            self._load_csv()

        print(f"X_train shape: {self.X_train.shape}")
        print(f"X_test shape: {self.X_test.shape}")
        return self.X_train, self.y_train, self.X_test, self.y_test

    def _load_keras(self):
        from .models import _ensure_tf, keras

        _ensure_tf()
        print("Loading MNIST data from keras.datasets...")
        (X_train, y_train), (X_test, y_test) = keras.datasets.mnist.load_data()
        self.X_train = X_train.reshape(len(X_train), -1)
        self.y_train = y_train
        self.X_test = X_test.reshape(len(X_test), -1)
        self.y_test = y_test

    def _load_csv(self):
        print("Loading MNIST data from CSV files...")
        train_path = os.path.join(self.data_dir, "mnist_train.csv")
        test_path = os.path.join(self.data_dir, "mnist_test.csv")
        if not os.path.exists(train_path) or not os.path.exists(test_path):
            raise FileNotFoundError(f"MNIST CSV files not found in {self.data_dir}")

        train_data = pd.read_csv(train_path)
        test_data = pd.read_csv(test_path)

        self.X_train = train_data.iloc[:, 1:].values
        self.y_train = train_data.iloc[:, 0].values
        self.X_test = test_data.iloc[:, 1:].values
        self.y_test = test_data.iloc[:, 0].values

    def preprocess_data(self):
        """
        Normalise pixels to [0, 1] and reshape to (samples, 28, 28, 1)
        """
        if self.X_train is None:
            raise ValueError("Data not loaded. Call load_data() first.")

        shape = (-1, TARGET_SIZE, TARGET_SIZE, 1)
        X_train = (self.X_train.astype('float32') / 255.0).reshape(shape)
        X_test = (self.X_test.astype('float32') / 255.0).reshape(shape)
        return X_train, self.y_train.astype('int64'), X_test, self.y_test.astype('int64')

    def get_class_distribution(self):
        """
        Returns:
            dict: Class counts for train and test sets
        """
        if self.y_train is None:
            raise ValueError("Data not loaded. Call load_data() first.")

        train_dist = pd.Series(self.y_train).value_counts().sort_index()
        test_dist = pd.Series(self.y_test).value_counts().sort_index()
        return {
            'train': {int(k): int(v) for k, v in train_dist.items()},
            'test': {int(k): int(v) for k, v in test_dist.items()},
        }
