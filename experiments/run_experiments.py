#!/usr/bin/env python3
"""
Experiment Runner - Run all inference experiments and collect results
=====================================================================
Runs the serial and parallel inference scripts with various configurations.
"""

import subprocess
import os
import sys
import time
import argparse

ROOT = os.path.dirname(os.path.abspath(__file__)) + '/..'
sys.path.insert(0, ROOT)

from convnet.data_loader import random_model, synthetic_batch, save_model, save_test_data


def prepare_inputs(data_dir, batch_size):
    """Write a synthetic model and test batch unless they already exist."""
    model_path = os.path.join(data_dir, 'model.npz')
    test_path = os.path.join(data_dir, f'test{batch_size}.npz')

    if not os.path.exists(model_path):
        print(f"Generating synthetic model at {model_path}")
        save_model(model_path, random_model(seed=42))
    if not os.path.exists(test_path):
        print(f"Generating synthetic test batch at {test_path}")
        x, y = synthetic_batch(batch_size, seed=0)
        save_test_data(test_path, x, y)
    return model_path, test_path


def common_args(model_path, test_path, batch_size, output_file):
    return [
        '--model', model_path,
        '--testdata', test_path,
        '--batch-size', str(batch_size),
        '--save-metrics', output_file,
    ]


def run_serial_experiment(algorithm, model_path, test_path, batch_size, output_dir):
    """Run serial inference with one convolution realization."""
    print("\n" + "="*60)
    print(f"RUNNING SERIAL EXPERIMENT ({algorithm})")
    print("="*60)

    output_file = os.path.join(output_dir, f'serial_{algorithm}_metrics.npz')

    cmd = [sys.executable, 'serial_inference.py', '--conv-algorithm', algorithm,
           '--num-threads', '1']
    cmd += common_args(model_path, test_path, batch_size, output_file)

    start_time = time.time()
    result = subprocess.run(cmd, cwd=ROOT)
    elapsed = time.time() - start_time

    print(f"Serial {algorithm} experiment completed in {elapsed:.2f}s")
    return result.returncode == 0


def run_mpi_experiment(num_procs, num_threads, model_path, test_path, batch_size, output_dir):
    """Run hybrid MPI + Numba inference."""
    print("\n" + "="*60)
    print(f"RUNNING MPI EXPERIMENT ({num_procs} procs × {num_threads} threads)")
    print("="*60)

    output_file = os.path.join(output_dir, f'mpi_{num_procs}p_{num_threads}t_metrics.npz')

    env = os.environ.copy()
    env['NUMBA_NUM_THREADS'] = str(num_threads)

    cmd = [
        'mpirun', '-np', str(num_procs),
        sys.executable, 'parallel_inference_mpi.py',
        '--num-threads', str(num_threads),
    ]
    cmd += common_args(model_path, test_path, batch_size, output_file)

    start_time = time.time()
    result = subprocess.run(cmd, cwd=ROOT, env=env)
    elapsed = time.time() - start_time

    print(f"MPI {num_procs}P×{num_threads}T experiment completed in {elapsed:.2f}s")
    return result.returncode == 0


def main():
    parser = argparse.ArgumentParser(description='Run all inference experiments')
    parser.add_argument('--batch-size', type=int, default=1000, help='Batch size')
    parser.add_argument('--data-dir', type=str, default='./data', help='Data directory')
    parser.add_argument('--output-dir', type=str, default='./results', help='Output directory')
    parser.add_argument('--skip-serial', action='store_true', help='Skip serial experiments')
    parser.add_argument('--skip-mpi', action='store_true', help='Skip MPI experiments')
    args = parser.parse_args()

    data_dir = os.path.abspath(args.data_dir)
    output_dir = os.path.abspath(args.output_dir)
    os.makedirs(output_dir, exist_ok=True)

    print("="*60)
    print("CNN INFERENCE PARALLELIZATION EXPERIMENTS")
    print("="*60)
    print(f"Batch size: {args.batch_size}")
    print(f"Output directory: {output_dir}")

    model_path, test_path = prepare_inputs(data_dir, args.batch_size)

    results = []

    if not args.skip_serial:
        for algorithm in ['direct', 'unroll']:
            success = run_serial_experiment(
                algorithm, model_path, test_path, args.batch_size, output_dir
            )
            results.append((f'Serial-{algorithm}', success))

    if not args.skip_mpi:
        for num_procs, num_threads in [(2, 1), (4, 1), (2, 2), (2, 4)]:
            success = run_mpi_experiment(
                num_procs, num_threads, model_path, test_path, args.batch_size, output_dir
            )
            results.append((f'MPI-{num_procs}P×{num_threads}T', success))

    print("\n" + "="*60)
    print("EXPERIMENT SUMMARY")
    print("="*60)
    for name, success in results:
        status = "✓ SUCCESS" if success else "✗ FAILED"
        print(f"  {name}: {status}")
    print("="*60)


if __name__ == '__main__':
    main()
