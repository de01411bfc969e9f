#!/usr/bin/env python3
"""
Analyze Results - Performance analysis of inference experiments
===============================================================
Compares serial and parallel inference timings and exports a CSV summary.
"""

import os
import sys
import argparse

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)) + '/..')
from convnet.metrics import InferenceMetrics

BASELINE = 'Serial-direct'


def load_metrics(results_dir):
    """Load all metrics files from results directory."""
    metrics = {}

    for algorithm in ['direct', 'unroll']:
        path = os.path.join(results_dir, f'serial_{algorithm}_metrics.npz')
        if os.path.exists(path):
            metrics[f'Serial-{algorithm}'] = InferenceMetrics.load(path)

    for p, t in [(2, 1), (4, 1), (2, 2), (2, 4)]:
        path = os.path.join(results_dir, f'mpi_{p}p_{t}t_metrics.npz')
        if os.path.exists(path):
            metrics[f'MPI-{p}P×{t}T'] = InferenceMetrics.load(path)

    return metrics


def print_performance_table(metrics):
    """Print performance comparison table."""
    print("\n" + "="*80)
    print("PERFORMANCE COMPARISON")
    print("="*80)
    print(f"{'Configuration':<20} {'Time(ms)':<12} {'Speedup':<10} {'Images/s':<12} {'Correct':<10}")
    print("-" * 80)

    baseline_time = metrics[BASELINE].elapsed_ms if BASELINE in metrics else None

    for name, m in metrics.items():
        speedup = baseline_time / m.elapsed_ms if baseline_time and m.elapsed_ms else 1.0
        print(f"{name:<20} {m.elapsed_ms:<12.2f} {speedup:<10.2f}x "
              f"{m.throughput:<12.1f} {m.correctness*100:<10.2f}%")

    print("="*80)


def print_scalability_analysis(metrics):
    """Print speedup and parallel efficiency relative to the serial baseline."""
    print("\n" + "="*80)
    print("SCALABILITY ANALYSIS")
    print("="*80)

    if BASELINE not in metrics:
        print("Serial baseline not found, cannot compute scalability.")
        return

    baseline_time = metrics[BASELINE].elapsed_ms
    print(f"\nSerial Baseline: {baseline_time:.2f}ms")
    print(f"{'Config':<20} {'Workers':<10} {'Time(ms)':<12} {'Speedup':<10} {'Efficiency':<12}")
    print("-" * 70)

    for name, m in metrics.items():
        if not name.startswith('MPI') or m.elapsed_ms <= 0:
            continue
        speedup = baseline_time / m.elapsed_ms
        efficiency = speedup / m.num_workers * 100
        print(f"{name:<20} {m.num_workers:<10} {m.elapsed_ms:<12.2f} {speedup:<10.2f}x {efficiency:<12.2f}%")

    print("="*80)


def check_consistency(metrics):
    """All configurations run the same deterministic network; correctness must agree."""
    values = {round(m.correctness, 6) for m in metrics.values()}
    if len(values) > 1:
        print("\nWarning: correctness differs between configurations:")
        for name, m in metrics.items():
            print(f"  {name}: {m.correctness:.6f}")


def save_results_csv(metrics, output_dir):
    """Save results to CSV file."""
    csv_path = os.path.join(output_dir, 'results_summary.csv')

    with open(csv_path, 'w') as f:
        f.write('Configuration,Label,Workers,Batch_Size,Elapsed_ms,Throughput,Correctness\n')
        for name, m in metrics.items():
            f.write(f"{name},{m.label},{m.num_workers},{m.batch_size},")
            f.write(f"{m.elapsed_ms:.2f},{m.throughput:.1f},{m.correctness:.4f}\n")

    print(f"\nResults saved to {csv_path}")


def main():
    parser = argparse.ArgumentParser(description='Analyze experiment results')
    parser.add_argument('--results-dir', type=str, default='./results', help='Results directory')
    args = parser.parse_args()

    print("Loading experiment results...")
    metrics = load_metrics(args.results_dir)

    if not metrics:
        print("No results found. Run experiments first.")
        return

    print(f"Found {len(metrics)} experiment results: {list(metrics.keys())}")

    print_performance_table(metrics)
    print_scalability_analysis(metrics)
    check_consistency(metrics)
    save_results_csv(metrics, args.results_dir)


if __name__ == '__main__':
    main()
