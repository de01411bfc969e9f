"""
Network Configuration
Fixed hyperparameters of the two-stage convolutional network.
"""

from dataclasses import dataclass

CONV_ALGORITHMS = ('direct', 'unroll')
MATMUL_BACKENDS = ('numba', 'workgroup')
POOL_REMAINDERS = ('truncate', 'error', 'pad')


@dataclass(frozen=True)
class NetworkConfig:
    """
    Immutable configuration shared by every layer of one inference run.

    Architecture:
        Input (28x28x1) -> Conv(5x5, 32) -> ReLU -> AvgPool(2)
        -> Conv(5x5, 64) -> ReLU -> AvgPool(2) -> Flatten
        -> Dense(128) -> ReLU -> Dense(10) -> Argmax
    """

    num_rows: int = 28
    num_cols: int = 28
    num_channels: int = 1
    num_digits: int = 10

    # (filter_h, filter_w, in_channels, out_channels)
    conv1_dims: tuple = (5, 5, 1, 32)
    conv2_dims: tuple = (5, 5, 32, 64)
    # (in_features, out_features)
    fc1_dims: tuple = (1024, 128)
    fc2_dims: tuple = (128, 10)

    pool_size: int = 2
    tile_width: int = 16

    conv_algorithm: str = 'unroll'
    matmul_backend: str = 'numba'
    pool_remainder: str = 'truncate'
    num_threads: int = None

    def __post_init__(self):
        self.validate()

    def validate(self):
        if self.conv_algorithm not in CONV_ALGORITHMS:
            raise ValueError(f"Unknown conv algorithm '{self.conv_algorithm}', "
                             f"expected one of {CONV_ALGORITHMS}")
        if self.matmul_backend not in MATMUL_BACKENDS:
            raise ValueError(f"Unknown matmul backend '{self.matmul_backend}', "
                             f"expected one of {MATMUL_BACKENDS}")
        if self.pool_remainder not in POOL_REMAINDERS:
            raise ValueError(f"Unknown pool remainder policy '{self.pool_remainder}', "
                             f"expected one of {POOL_REMAINDERS}")
        for name in ('num_rows', 'num_cols', 'num_channels', 'num_digits',
                     'pool_size', 'tile_width'):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be positive")
        if self.num_threads is not None and self.num_threads < 1:
            raise ValueError("num_threads must be positive")

    @property
    def input_dims(self):
        return (self.num_rows, self.num_cols, self.num_channels)

    @property
    def weight_dims(self):
        return {
            'conv1': tuple(self.conv1_dims),
            'conv2': tuple(self.conv2_dims),
            'fc1': tuple(self.fc1_dims),
            'fc2': tuple(self.fc2_dims),
        }

    @property
    def label(self):
        """Short name used for metrics files and result tables."""
        if self.conv_algorithm == 'direct':
            return 'direct'
        return f"unroll-{self.matmul_backend}-t{self.tile_width}"

    @classmethod
    def from_args(cls, args):
        """Build a configuration from parsed command-line arguments."""
        return cls(
            tile_width=args.tile_width,
            conv_algorithm=args.conv_algorithm,
            matmul_backend=args.matmul_backend,
            pool_remainder=args.pool_remainder,
            num_threads=args.num_threads,
        )


DEFAULT_CONFIG = NetworkConfig()


def add_config_arguments(parser):
    """Register the configuration flags shared by the inference scripts."""
    parser.add_argument('--conv-algorithm', type=str, default='unroll',
                        choices=CONV_ALGORITHMS, help='Convolution realization')
    parser.add_argument('--matmul-backend', type=str, default='numba',
                        choices=MATMUL_BACKENDS, help='Blocked matrix multiply backend')
    parser.add_argument('--tile-width', type=int, default=16,
                        help='Tile width of the blocked matrix multiply')
    parser.add_argument('--pool-remainder', type=str, default='truncate',
                        choices=POOL_REMAINDERS,
                        help='Handling of rows/cols not divisible by the pool size')
    parser.add_argument('--num-threads', type=int, default=None,
                        help='Numba threads per process')
    return parser
