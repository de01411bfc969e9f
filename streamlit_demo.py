#!/usr/bin/env python3
"""
Streamlit Demo - CNN Inference Kernel Dashboard
===============================================
Interactive web-based view of the forward pipeline, the two convolution
realizations, the blocked matrix multiply, and saved experiment results.

Usage:
    streamlit run streamlit_demo.py
"""

import os
import sys

import numpy as np
import plotly.graph_objects as go
import plotly.express as px
import streamlit as st

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from convnet.config import NetworkConfig, DEFAULT_CONFIG
from convnet.data_loader import random_model, synthetic_batch
from convnet.layers import conv_forward, tiled_matmul
from convnet.metrics import Timer, compute_correctness
from convnet.network import CNN, compute_shapes
from experiments.analyze_results import load_metrics, BASELINE

# Page configuration
st.set_page_config(
    page_title="CNN Inference Kernels",
    page_icon="🧮",
    layout="wide",
    initial_sidebar_state="expanded"
)

st.markdown('<h1 style="text-align: center;">🧮 CNN Inference Kernels</h1>', unsafe_allow_html=True)
st.markdown('<p style="text-align: center;">Direct and unroll-and-multiply convolution, '
            'blocked matrix multiply, MPI + Numba parallel inference</p>', unsafe_allow_html=True)

# Sidebar
st.sidebar.title("📋 Navigation")
page = st.sidebar.radio("Go to", [
    "🧠 Network Shapes",
    "🔁 Convolution Kernels",
    "🧱 Tiled Matrix Multiply",
    "🎮 Live Inference",
    "📈 Experiment Results",
])


@st.cache_resource
def cached_model(seed):
    return random_model(DEFAULT_CONFIG, seed=seed)


def fmt_shape(shape):
    return "×".join(str(e) for e in shape)


# ============================================================================
# PAGE: Network Shapes
# ============================================================================
if page == "🧠 Network Shapes":
    st.header("Forward Pipeline Shapes")

    batch_size = st.slider("Batch size", 1, 256, 10)
    shapes = compute_shapes(DEFAULT_CONFIG, batch_size)

    rows = {"Stage": [], "Output Shape": [], "Elements": []}
    for name, shape in shapes.items():
        rows["Stage"].append(name)
        rows["Output Shape"].append(fmt_shape(shape))
        rows["Elements"].append(f"{int(np.prod(shape)):,}")
    st.table(rows)

    params = {name: int(np.prod(dims)) for name, dims in DEFAULT_CONFIG.weight_dims.items()}
    fig = px.bar(x=list(params.keys()), y=list(params.values()),
                 labels={"x": "Weights", "y": "Parameters"}, title="Parameters per Layer")
    st.plotly_chart(fig, use_container_width=True)
    st.metric("Total Parameters", f"{sum(params.values()):,}",
              f"{sum(params.values()) * 4 / 1024:.0f} KiB in float32")

# ============================================================================
# PAGE: Convolution Kernels
# ============================================================================
elif page == "🔁 Convolution Kernels":
    st.header("Direct vs Unroll-and-Multiply Convolution")

    col1, col2, col3 = st.columns(3)
    with col1:
        batch_size = st.slider("Batch size", 1, 64, 8)
    with col2:
        tile_width = st.select_slider("Tile width", [4, 8, 16, 32], value=16)
    with col3:
        layer = st.radio("Layer", ["conv1", "conv2"])

    weights = cached_model(42)
    if layer == "conv1":
        X, _ = synthetic_batch(batch_size, DEFAULT_CONFIG, seed=1)
    else:
        X = np.random.RandomState(1).rand(batch_size, 12, 12, 32).astype(np.float32)

    results = {}
    times = {}
    for algorithm in ["direct", "unroll"]:
        config = NetworkConfig(conv_algorithm=algorithm, tile_width=tile_width)
        conv_forward(X[:1], weights[layer], config)  # compile
        with Timer() as timer:
            results[algorithm] = conv_forward(X, weights[layer], config, relu=True)
        times[algorithm] = timer.elapsed_ms

    diff = float(np.max(np.abs(results["direct"] - results["unroll"])))
    c1, c2, c3 = st.columns(3)
    c1.metric("Direct", f"{times['direct']:.1f} ms")
    c2.metric("Unroll", f"{times['unroll']:.1f} ms")
    c3.metric("Max |difference|", f"{diff:.2e}")

    fig = go.Figure(go.Bar(x=list(times.keys()), y=list(times.values()),
                           marker_color=["#3498db", "#2ecc71"],
                           text=[f"{t:.1f} ms" for t in times.values()], textposition="auto"))
    fig.update_layout(title=f"{layer} forward time", yaxis_title="ms", height=350)
    st.plotly_chart(fig, use_container_width=True)

    st.subheader("First output channel of sample 0")
    st.plotly_chart(px.imshow(results["unroll"][0, :, :, 0], color_continuous_scale="viridis"),
                    use_container_width=True)

# ============================================================================
# PAGE: Tiled Matrix Multiply
# ============================================================================
elif page == "🧱 Tiled Matrix Multiply":
    st.header("Blocked Matrix Multiply")

    col1, col2, col3, col4 = st.columns(4)
    rows = col1.number_input("Rows", 1, 256, 31)
    inner = col2.number_input("Shared dimension", 1, 256, 47)
    cols = col3.number_input("Columns", 1, 256, 15)
    tile_width = col4.select_slider("Tile width", [2, 4, 8, 16, 32], value=16)

    tile_rows = -(-rows // tile_width)
    tile_cols = -(-cols // tile_width)
    phases = -(-inner // tile_width)
    st.markdown(f"**{tile_rows * tile_cols}** output tiles × **{phases}** phases each; "
                f"boundary phase uses **{inner - (phases - 1) * tile_width}** of {tile_width} slots.")

    # Fraction of each output tile that lies inside the product
    coverage = np.zeros((tile_rows, tile_cols))
    for i in range(tile_rows):
        for j in range(tile_cols):
            h = min(tile_width, rows - i * tile_width)
            w = min(tile_width, cols - j * tile_width)
            coverage[i, j] = h * w / tile_width ** 2
    st.plotly_chart(px.imshow(coverage, zmin=0, zmax=1, color_continuous_scale="blues",
                              labels={"color": "valid fraction"}, title="Output tile occupancy"),
                    use_container_width=True)

    rng = np.random.RandomState(0)
    A = rng.randn(rows, inner).astype(np.float32)
    B = rng.randn(inner, cols).astype(np.float32)
    c1, c2 = st.columns(2)
    diff = float(np.max(np.abs(tiled_matmul(A, B, tile_width) - A @ B)))
    c1.metric("Numba tiles vs A @ B", f"{diff:.2e}")
    # Python threads per tile row; keep the interactive case small
    if rows * inner * cols <= 64 ** 3 and tile_rows * tile_cols <= 256:
        diff = float(np.max(np.abs(tiled_matmul(A, B, tile_width, backend="workgroup") - A @ B)))
        c2.metric("Work-groups vs A @ B", f"{diff:.2e}")
    else:
        c2.info("Work-group backend skipped for this size")

# ============================================================================
# PAGE: Live Inference
# ============================================================================
elif page == "🎮 Live Inference":
    st.header("Live Inference on a Synthetic Batch")

    batch_size = st.slider("Batch size", 1, 512, 64)
    algorithm = st.radio("Convolution", ["unroll", "direct"], horizontal=True)
    verbose = st.checkbox("Print stage timings to the console")

    if st.button("▶ Run forward pass"):
        config = NetworkConfig(conv_algorithm=algorithm)
        X, y = synthetic_batch(batch_size, config, seed=3)
        model = CNN(cached_model(42), config, verbose=verbose)
        model.forward(X[:1])  # compile

        with Timer() as timer:
            predicted = model.forward(X)

        c1, c2, c3 = st.columns(3)
        c1.metric("Elapsed", f"{timer.elapsed_ms:.1f} ms")
        c2.metric("Images/s", f"{batch_size / timer.elapsed:.0f}")
        c3.metric("Correctness", f"{compute_correctness(predicted, y) * 100:.1f}%",
                  "random weights")

        counts = np.bincount(predicted, minlength=config.num_digits)
        fig = px.bar(x=list(range(config.num_digits)), y=counts,
                     labels={"x": "Predicted digit", "y": "Count"}, title="Prediction histogram")
        st.plotly_chart(fig, use_container_width=True)

# ============================================================================
# PAGE: Experiment Results
# ============================================================================
elif page == "📈 Experiment Results":
    st.header("Experiment Results")

    results_dir = st.text_input("Results directory", "./results")
    metrics = load_metrics(results_dir) if os.path.isdir(results_dir) else {}

    if not metrics:
        st.warning("No results found. Run `python experiments/run_experiments.py` first.")
    else:
        names = list(metrics.keys())
        times = [m.elapsed_ms for m in metrics.values()]
        baseline = metrics[BASELINE].elapsed_ms if BASELINE in metrics else times[0]
        speedups = [baseline / t if t else 0.0 for t in times]

        col1, col2 = st.columns(2)
        with col1:
            fig = go.Figure(go.Bar(x=names, y=times, text=[f"{t:.0f}" for t in times],
                                   textposition="auto", marker_color="#3498db"))
            fig.update_layout(title="Elapsed Time", yaxis_title="ms", height=400)
            st.plotly_chart(fig, use_container_width=True)
        with col2:
            fig = go.Figure()
            fig.add_trace(go.Bar(x=names, y=speedups, text=[f"{s:.2f}×" for s in speedups],
                                 textposition="auto", marker_color="#2ecc71", name="Measured"))
            fig.add_trace(go.Scatter(x=names, y=[m.num_workers for m in metrics.values()],
                                     mode="lines+markers", name="Ideal Linear",
                                     line=dict(dash="dash", color="gray")))
            fig.update_layout(title="Speedup vs Serial Direct", yaxis_title="Speedup (×)", height=400)
            st.plotly_chart(fig, use_container_width=True)

        st.table({
            "Configuration": names,
            "Workers": [m.num_workers for m in metrics.values()],
            "Elapsed (ms)": [f"{t:.2f}" for t in times],
            "Correctness": [f"{m.correctness * 100:.2f}%" for m in metrics.values()],
        })
