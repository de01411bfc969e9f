"""
Metrics and Timing Utilities
"""

import time
import numpy as np

from .layers import argmax


class Timer:
    """Simple timer for measuring execution time."""

    def __init__(self):
        self.start_time = None
        self.elapsed = 0

    def start(self):
        self.start_time = time.perf_counter()

    def stop(self):
        if self.start_time is not None:
            self.elapsed = time.perf_counter() - self.start_time
            self.start_time = None
        return self.elapsed

    @property
    def elapsed_ms(self):
        return self.elapsed * 1000.0

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, *args):
        self.stop()


def reference_labels(y):
    """Integer labels from (N,) labels or (N, num_digits) one-hot/score rows."""
    y = np.asarray(y)
    if y.ndim > 1:
        return argmax(y)
    return y.astype(np.int32)


def compute_correctness(predicted, reference):
    """
    Fraction of predictions matching the reference.

    predicted: (N,) labels
    reference: (N,) labels or (N, num_digits) one-hot rows
    """
    predicted = np.asarray(predicted)
    reference = np.asarray(reference)
    if predicted.size == 0 and reference.shape[:1] == (0,):
        return 0.0
    reference = reference_labels(reference)
    if predicted.shape != reference.shape:
        raise ValueError(f"Prediction shape {predicted.shape} does not match "
                         f"reference shape {reference.shape}")
    return float(np.mean(predicted == reference))


class InferenceMetrics:
    """Result of one timed forward pass over a batch."""

    def __init__(self, batch_size=0, elapsed_ms=0.0, correctness=0.0, label='serial',
                 num_workers=1):
        self.batch_size = batch_size
        self.elapsed_ms = elapsed_ms
        self.correctness = correctness
        self.label = label
        self.num_workers = num_workers

    @property
    def throughput(self):
        """Images per second."""
        if self.elapsed_ms <= 0:
            return 0.0
        return self.batch_size / (self.elapsed_ms / 1000.0)

    def report_line(self):
        return (f"Done with {self.batch_size} queries in elapsed = {self.elapsed_ms:g} "
                f"milliseconds. Correctness: {self.correctness:g}")

    def get_summary(self):
        return {
            'label': self.label,
            'batch_size': self.batch_size,
            'elapsed_ms': self.elapsed_ms,
            'correctness': self.correctness,
            'num_workers': self.num_workers,
            'throughput': self.throughput,
        }

    def print_summary(self):
        summary = self.get_summary()
        print("\n" + "="*50)
        print("INFERENCE SUMMARY")
        print("="*50)
        print(f"Configuration: {summary['label']}")
        print(f"Workers: {summary['num_workers']}")
        print(f"Batch Size: {summary['batch_size']}")
        print(f"Elapsed: {summary['elapsed_ms']:.2f} ms")
        print(f"Throughput: {summary['throughput']:.1f} images/s")
        print(f"Correctness: {summary['correctness']*100:.2f}%")
        print("="*50)

    def save(self, filepath):
        """Save metrics to numpy file."""
        np.savez(filepath,
                 batch_size=self.batch_size,
                 elapsed_ms=self.elapsed_ms,
                 correctness=self.correctness,
                 label=self.label,
                 num_workers=self.num_workers)

    @classmethod
    def load(cls, filepath):
        """Load metrics from numpy file."""
        data = np.load(filepath)
        return cls(batch_size=int(data['batch_size']),
                   elapsed_ms=float(data['elapsed_ms']),
                   correctness=float(data['correctness']),
                   label=str(data['label']),
                   num_workers=int(data['num_workers']))
