"""
Main entry point when running the swerve_core module with python -m.
"""

import logging
import sys

from .client import build_arg_parser, main, setup_logging
from .component_modes import parse_component_flags
from .kinematics import ConfigurationError

if __name__ == "__main__":
    # Component flags first (--sim/--stub/--hardware, --no-vision, ...)
    component_mode, remaining_args = parse_component_flags()
    args = build_arg_parser().parse_args(remaining_args)

    setup_logging(args.verbose)

    try:
        main(
            component_mode=component_mode,
            cycles=args.cycles,
            uri=args.uri,
            use_feed=not args.no_feed,
        )
    except ConfigurationError as e:
        logging.error(f"Configuration error: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        logging.info("\nExiting...")
        sys.exit(0)
