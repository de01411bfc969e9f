#!/usr/bin/env python3
"""
Hybrid MPI + Numba Parallel CNN Inference
=========================================
Data parallelism across MPI processes, thread parallelism inside each
process via Numba ``prange`` kernels.

Parallelization Strategy:
    - The batch is split into contiguous shards, one per MPI process
    - Each process runs the full forward pass on its shard
    - Predicted labels are gathered on rank 0 for scoring
    - Wall time is measured between two barriers

Usage:
    mpirun -np 4 python parallel_inference_mpi.py --testdata data/test.npz \
        --model data/model.npz --num-threads 2
"""

import os
import sys

import numpy as np
from mpi4py import MPI
from numba import get_num_threads

from convnet.config import NetworkConfig
from convnet.data_loader import load_test_data, load_model, partition_data
from convnet.errors import InferenceError
from convnet.metrics import Timer, InferenceMetrics, compute_correctness
from convnet.network import CNN, predict_shard
from serial_inference import build_parser


def parallel_forward(model, X, y, comm):
    """
    Run this rank's shard and gather all predictions on rank 0.

    Returns (predicted, elapsed_ms); predicted is None off rank 0.
    """
    rank = comm.Get_rank()
    size = comm.Get_size()

    X_local, _ = partition_data(X, y, rank, size)

    comm.Barrier()
    timer = Timer()
    timer.start()

    predicted_local = predict_shard(model, X_local)

    comm.Barrier()
    elapsed_ms = comm.allreduce(timer.stop() * 1000.0, op=MPI.MAX)

    shards = comm.gather(predicted_local, root=0)
    if rank != 0:
        return None, elapsed_ms
    return np.concatenate(shards), elapsed_ms


def main():
    args = build_parser('Hybrid MPI + Numba CNN Inference').parse_args()

    comm = MPI.COMM_WORLD
    rank = comm.Get_rank()
    size = comm.Get_size()

    try:
        config = NetworkConfig.from_args(args)
        if rank == 0:
            print("Loading test data and model...")
        X, y = load_test_data(args.testdata, args.batch_size, config)
        weights = load_model(args.model, config)

        model = CNN(weights, config, verbose=args.verbose and rank == 0)
        if rank == 0:
            print(f"Test set: {X.shape}")
            print(f"MPI processes: {size}, Numba threads per process: {get_num_threads()}")

        predicted, elapsed_ms = parallel_forward(model, X, y, comm)
    except (InferenceError, ValueError, FileNotFoundError) as e:
        print(f"[rank {rank}] Error: {e}", file=sys.stderr)
        comm.Abort(1)
        return

    if rank == 0:
        metrics = InferenceMetrics(
            batch_size=X.shape[0],
            elapsed_ms=elapsed_ms,
            correctness=compute_correctness(predicted, y),
            label=f"mpi-{size}p-{get_num_threads()}t-{config.label}",
            num_workers=size * get_num_threads(),
        )
        print(metrics.report_line())

        if args.save_metrics:
            directory = os.path.dirname(args.save_metrics)
            if directory:
                os.makedirs(directory, exist_ok=True)
            metrics.save(args.save_metrics)
            print(f"Metrics saved to {args.save_metrics}")


if __name__ == '__main__':
    main()
