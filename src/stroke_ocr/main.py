"""
Main Entry Point for the stroke digit recogniser
Provides command-line interface and GUI launcher
"""

import argparse
import os
import sys
from dataclasses import replace

from .constants import DEFAULT_MODEL_PATH, PAD, RecognizerConfig
from .display import ConsoleDisplay
from .session import RecognitionSession, load_gestures


def resolve_replay_config(config, size, pinned=()):
    """
    Apply a replay file's surface size to ``config``.

    Dimensions named in ``pinned`` were given on the command line and keep
    their value; the file's size is only used for the others.
    """
    if size is None:
        return config
    file_size = {'width': size[0], 'height': size[1]}
    for name in pinned:
        if name in file_size and file_size[name] != getattr(config, name):
            print(f"Using --{name} {getattr(config, name)} instead of {file_size[name]} from the replay file")
    return replace(config, **{k: v for k, v in file_size.items() if k not in pinned})


def replay_file(replay_path, config, save_path=None, pinned=(), model=None):
    """Draw the gestures from a replay file, classify them and print the results"""
    size, gestures = load_gestures(replay_path)
    config = resolve_replay_config(config, size, pinned)

    session = RecognitionSession(config, model=model, display=ConsoleDisplay())
    boxes = session.replay(gestures)
    print(f"Recorded {len(boxes)} gesture box(es) from {replay_path}")

    if save_path:
        session.surface.save(save_path)
        print(f"Saved surface to {save_path}")

    session.initialize_model()
    return session.classify()


def check_dependencies():
    """Check if all required dependencies are installed"""
    required_packages = [
        'cv2', 'numpy', 'PIL', 'pandas', 'matplotlib', 'seaborn',
        'sklearn', 'tkinter', 'tensorflow'
    ]

    missing_packages = []
    for package in required_packages:
        try:
            __import__(package)
            print(f"✓ {package}")
        except ImportError:
            missing_packages.append(package)
            print(f"✗ {package} - MISSING")

    if missing_packages:
        print(f"\nMissing packages: {missing_packages}")
        print("Please install missing packages using: pip install <package_name>")
        return False
    print("\nAll dependencies are installed!")
    return True


def build_parser():
    parser = argparse.ArgumentParser(description="Stroke digit recognition")
    parser.add_argument('--gui', action='store_true', help='Launch GUI application')
    parser.add_argument('--replay', type=str, help='Classify gestures from a JSON replay file')
    parser.add_argument('--save-surface', type=str, help='With --replay, save the drawn surface image')
    parser.add_argument('--model', type=str, default=DEFAULT_MODEL_PATH, help='Path to the digit model')
    parser.add_argument('--width', type=int, default=None, help='Surface width in pixels')
    parser.add_argument('--height', type=int, default=None, help='Surface height in pixels')
    parser.add_argument('--pad', type=int, default=PAD, help='Padding around each gesture box')
    parser.add_argument('--per-axis', action='store_true',
                        help='Normalise y coordinates by surface height instead of width')
    parser.add_argument('--skip-degenerate', action='store_true',
                        help='Do not classify boxes of gestures without any points')
    parser.add_argument('--check-deps', action='store_true', help='Check if all dependencies are installed')
    return parser


def config_from_args(args):
    defaults = RecognizerConfig()
    return RecognizerConfig(
        width=args.width or defaults.width,
        height=args.height or defaults.height,
        pad=args.pad,
        model_path=args.model,
        per_axis_normalization=args.per_axis,
        skip_degenerate=args.skip_degenerate,
    )


def main(argv=None):
    """Main function with command line interface"""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.check_deps:
        return 0 if check_dependencies() else 1

    config = config_from_args(args)

    if args.replay:
        if not os.path.exists(args.replay):
            print(f"Error: Replay file {args.replay} not found")
            return 1
        try:
            pinned = [name for name in ("width", "height") if getattr(args, name) is not None]
            results = replay_file(args.replay, config, args.save_surface, pinned)
        except (FileNotFoundError, ImportError, ValueError) as e:
            print(f"Error: {e}")
            return 1
        return 0 if results is not None else 1

    if args.gui or not (argv if argv is not None else sys.argv[1:]):
        from .gui import main as gui_main

        print("Launching GUI application...")
        gui_main(config)
        return 0

    parser.print_help()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
