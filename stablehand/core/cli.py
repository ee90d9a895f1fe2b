# stablehand/core/cli.py
"""
CLI for the stablehand worker and check commands.

Job classes are resolved by name when a job is performed, so the modules that
define them must be importable:
1. Installed packages and PYTHONPATH entries work as usual
2. Convenience: if cwd has pyproject.toml, we add cwd to sys.path
3. `--import MODULE` imports a module (or a .py file) before the worker starts,
   so import errors surface at startup instead of on the first job
"""

import argparse
import sys
import threading
import traceback

from redis.exceptions import RedisError

from stablehand.core.banner import print_banner
from stablehand.core.engine.client import Client
from stablehand.core.engine.reservers import RESERVERS
from stablehand.core.errors import ConfigurationError, ErrorCode, StablehandError
from stablehand.core.logging import get_logger, setup_logging
from stablehand.core.models.redis import RedisConfig
from stablehand.core.models.worker import WorkerConfig
from stablehand.core.utils.imports import import_target, setup_sys_path_from_cwd
from stablehand.core.utils.url import mask_redis_url
from stablehand.core.worker.base import BaseWorker
from stablehand.core.worker.forking import ForkingWorker
from stablehand.core.worker.serial import SerialWorker

_LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']


def build_configs(args: argparse.Namespace) -> tuple[WorkerConfig, RedisConfig]:
    """Validate command-line values into the worker and engine configs."""
    if getattr(args, 'serial', False) and args.processes != 1:
        raise ConfigurationError(
            message='--serial runs a single worker in this process',
            code=ErrorCode.CLI_INVALID_ARGS,
            notes=[f'--processes {args.processes}'],
            help_text='drop --serial to run a pool of forked workers',
        )
    worker_config = WorkerConfig(
        interval=args.interval,
        num_workers=args.processes,
        max_startup_interval=args.max_startup_interval,
        shutdown_timeout=args.shutdown_timeout,
    )
    redis_config = RedisConfig(
        url=args.redis_url,
        script_path=args.script,
        worker_name=args.worker_name,
    )
    return worker_config, redis_config


def import_job_modules(targets: list[str]) -> None:
    """Import the modules that define job classes."""
    logger = get_logger('cli')

    project_root = setup_sys_path_from_cwd()
    if project_root:
        logger.info(f'Added project root to sys.path: {project_root}')

    for target in targets:
        try:
            import_target(target)
        except (ImportError, FileNotFoundError) as e:
            raise ConfigurationError(
                message=f'could not import job module: {target}',
                code=ErrorCode.JOB_CLASS_NOT_FOUND,
                notes=[str(e), f'sys.path: {sys.path[:5]}...'],
                help_text=(
                    'ensure you are running from the correct directory\n'
                    'or set PYTHONPATH to include your project root'
                ),
            ) from e
        logger.debug(f'Imported job module {target}')


def log_thread_stacks() -> None:
    """Log the stack of every thread. Installed as the HUP handler."""
    logger = get_logger('cli')
    names = {thread.ident: thread.name for thread in threading.enumerate()}
    for ident, frame in sys._current_frames().items():
        stack = ''.join(traceback.format_stack(frame))
        logger.warning(f'Thread {names.get(ident, ident)}:\n{stack}')


def build_worker(
    args: argparse.Namespace,
    worker_config: WorkerConfig,
    redis_config: RedisConfig,
) -> BaseWorker:
    client = Client.from_config(redis_config)
    queues = [client.queue(name) for name in args.queues]
    reserver = RESERVERS[args.reserver](queues)
    worker_cls = SerialWorker if args.serial else ForkingWorker
    return worker_cls(reserver, worker_config, sighup_handler=log_thread_stacks)


def worker_command(args: argparse.Namespace) -> None:
    """Handle worker command."""
    logger = get_logger('cli')

    # Setup logging first
    loglevel: str = args.loglevel
    setup_logging(loglevel)
    logger.info(f'Starting stablehand worker with loglevel={loglevel}')

    try:
        worker_config, redis_config = build_configs(args)
        import_job_modules(args.imports)
        worker = build_worker(args, worker_config, redis_config)
    except StablehandError as e:
        logger.error(str(e))
        sys.exit(1)
    except ValueError as e:
        logger.error(str(e))
        sys.exit(1)

    # Load the engine script once up front; a missing Redis fails here.
    try:
        for client in worker.uniq_clients():
            client.load_script()
    except RedisError as e:
        logger.error(f'Failed to load engine script from {mask_redis_url(redis_config.url)}: {e}')
        sys.exit(1)

    print_banner(
        worker_config,
        redis_url=redis_config.url,
        reserver_description=worker.reserver.description,
        mode='serial' if args.serial else 'forking',
    )

    try:
        worker.run()
    except KeyboardInterrupt:
        logger.info('Worker interrupted by user')
        return
    except Exception as e:
        logger.error(f'Worker failed: {e}')
        sys.exit(1)


def check_command(args: argparse.Namespace) -> None:
    """Handle check command: validate configuration without starting a worker."""
    logger = get_logger('cli')

    loglevel: str = args.loglevel
    setup_logging(loglevel)

    try:
        _worker_config, redis_config = build_configs(args)
        import_job_modules(args.imports)
        if args.live:
            client = Client.from_config(redis_config)
            client.redis.ping()
            sha = client.load_script()
            logger.info(f'Engine script loaded as {sha}')
    except StablehandError as e:
        print(e.format_rust_style(), file=sys.stderr)
        sys.exit(1)
    except ValueError as e:
        print(str(e), file=sys.stderr)
        sys.exit(1)
    except RedisError as e:
        error = ConfigurationError(
            message='engine not reachable',
            code=ErrorCode.SCRIPT_LOAD_FAILED,
            notes=[f'url: {mask_redis_url(redis_config.url)}', str(e)],
            help_text='check --redis-url and that Redis is running',
        )
        print(error.format_rust_style(), file=sys.stderr)
        sys.exit(1)

    print('ok: all validations passed')
    sys.exit(0)


def _add_common_arguments(parser: argparse.ArgumentParser, default_loglevel: str) -> None:
    defaults = WorkerConfig.model_fields
    parser.add_argument(
        '--redis-url',
        default=RedisConfig.model_fields['url'].default,
        help='Redis URL (default: redis://localhost:6379/0)',
    )
    parser.add_argument(
        '--script',
        help='Path of the engine Lua script',
    )
    parser.add_argument(
        '--worker-name',
        help='Worker identity reported to the engine (default: <hostname>-<pid>)',
    )
    parser.add_argument(
        '--processes',
        type=int,
        default=defaults['num_workers'].default,
        help='Number of worker processes (default: 1)',
    )
    parser.add_argument(
        '--interval',
        type=float,
        default=defaults['interval'].default,
        help='Seconds to sleep when no job is available, 0 to busy-poll (default: 5)',
    )
    parser.add_argument(
        '--max-startup-interval',
        type=float,
        default=defaults['max_startup_interval'].default,
        help='Upper bound of the random child startup delay (default: 10)',
    )
    parser.add_argument(
        '--shutdown-timeout',
        type=float,
        default=defaults['shutdown_timeout'].default,
        help='Seconds to wait for children on shutdown (default: 30)',
    )
    parser.add_argument(
        '--import',
        dest='imports',
        action='append',
        default=[],
        metavar='MODULE',
        help='Module or .py file defining job classes (repeatable)',
    )
    parser.add_argument(
        '--loglevel',
        choices=_LOG_LEVELS,
        default=default_loglevel,
        type=str.upper,
        help=f'Logging level (default: {default_loglevel})',
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='stablehand',
        description='stablehand - job queue worker and process supervisor',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Four worker processes on two queues, first queue drained first
  stablehand worker emails reports --script qless.lua --processes 4

  # A single in-process worker, rotating between queues
  stablehand worker emails reports --script qless.lua --serial --reserver round-robin

  # Validate configuration, then also reach Redis and load the script
  stablehand check --script qless.lua --import myapp.jobs
  stablehand check --script qless.lua --live
""",
    )
    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    # Worker command
    worker_parser = subparsers.add_parser(
        'worker',
        help='Start a worker',
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    worker_parser.add_argument(
        'queues',
        nargs='+',
        metavar='QUEUE',
        help='Queues to reserve jobs from',
    )
    worker_parser.add_argument(
        '--reserver',
        choices=sorted(RESERVERS),
        default='ordered',
        help='How the next queue is chosen (default: ordered)',
    )
    worker_parser.add_argument(
        '--serial',
        action='store_true',
        default=False,
        help='Run jobs in this process instead of a pool of forked children',
    )
    _add_common_arguments(worker_parser, default_loglevel='INFO')

    # Check command
    check_parser = subparsers.add_parser(
        'check',
        help='Validate configuration without starting a worker',
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    check_parser.add_argument(
        '--live',
        action='store_true',
        default=False,
        help='Also ping Redis and load the engine script',
    )
    _add_common_arguments(check_parser, default_loglevel='WARNING')

    return parser


def main(argv: list[str] | None = None) -> None:
    """Main CLI entry point."""
    try:
        parser = build_parser()
        args = parser.parse_args(argv)

        match args.command:
            case 'worker':
                worker_command(args)
            case 'check':
                check_command(args)
            case _:
                parser.print_help()
                sys.exit(1)
    except KeyboardInterrupt:
        print('\nInterrupted by user')
        sys.exit(0)


if __name__ == '__main__':
    main()
