import argparse
import logging
import sys

from .config import ConfigError, load_config
from .filesystem import FileSystem
from .watcher import run_once, run_watcher


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
                        prog='shaderpp',
                        description='Expands #include, #for and #{...} directives in shader sources',
                        epilog='The configuration file lists the shaders to write, see README.md')
    parser.add_argument('config')
    parser.add_argument('-w', '--watch', action='store_true',
                        help='keep running and reprocess shaders when their files change')
    parser.add_argument('-v', '--verbose', action='store_true')
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format='%(asctime)s - %(message)s',
                        datefmt='%Y-%m-%d %H:%M:%S')

    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        print(f"Error: {e}")
        return 2

    file_system = FileSystem()
    try:
        if args.watch:
            run_watcher(cfg, file_system)
            return 0
        return 0 if run_once(cfg, file_system) else 1
    finally:
        file_system.close()


if __name__ == '__main__':
    sys.exit(main())
