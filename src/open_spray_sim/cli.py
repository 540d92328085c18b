"""Command-line options for the viewer, generated from SprayParams."""
import argparse
from dataclasses import fields

from .brush import SprayParams

DEFAULT_COLOR = "#221f20"


def build_arg_parser():
    parser = argparse.ArgumentParser(description="Spray Paint Simulator")
    parser.add_argument("-W", "--width", type=int, default=1024, help="Canvas width (default: 1024)")
    parser.add_argument("-H", "--height", type=int, default=768, help="Canvas height (default: 768)")
    parser.add_argument("-f", "--fps", type=int, default=60, help="Target FPS cap (default: 60)")
    parser.add_argument("--seed", type=int, default=None, help="Random seed for a reproducible session")
    parser.add_argument("--color", type=str, default=DEFAULT_COLOR, help="Initial paint colour (#rrggbb)")

    # Add SprayParams as arguments automatically
    for f in fields(SprayParams):
        arg_name = f.name.replace('_', '-')
        if f.type is bool:
            parser.add_argument(f"--{arg_name}", action=argparse.BooleanOptionalAction, default=f.default, help=f.metadata.get('help', ''))
        else:
            parser.add_argument(f"--{arg_name}", type=type(f.default), default=f.default, help=f.metadata.get('help', ''))
    return parser


def params_from_args(args):
    """The SprayParams overrides carried by parsed arguments."""
    return {f.name: getattr(args, f.name) for f in fields(SprayParams)}
