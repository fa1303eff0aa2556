import argparse
import logging
import sys

from . import __doc__ as USAGE, __version__
from .actors import LogGroupActor
from .client import CloudWatchLogsClient, FetchError
from .components import Sidebar
from .config import load_settings
from .lanes import WorkerLanePool
from .logging_setup import setup_logging
from .orchestrator import Orchestrator
from .pump import InputPump, make_event_queue
from .state import SidebarState, StatusState
from .ui import Screen

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog='logdeck',
        description='logdeck — terminal dashboard for CloudWatch Logs',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=USAGE)
    ap.add_argument('--profile',       metavar='NAME', help='AWS profile to use')
    ap.add_argument('--region',        metavar='NAME', help='AWS region to use')
    ap.add_argument('--prefix',        metavar='TEXT', help='only list log groups starting with TEXT')
    ap.add_argument('--tick-interval', metavar='SEC',  type=float, help='screen refresh interval')
    ap.add_argument('--tail-interval', metavar='SEC',  type=float, help='tail polling interval')
    ap.add_argument('--page-size',     metavar='N',    type=int,   help='log events per request')
    ap.add_argument('--log-file',      metavar='PATH', help='where to write the application log')
    ap.add_argument('--log-level',     metavar='LEVEL',
                    choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'], type=str.upper,
                    help='application log level')
    ap.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    return ap


def run(client, settings) -> None:
    # Wire states, actors, pool, pump and orchestrator onto one urwid screen.
    status        = StatusState()
    events        = make_event_queue()
    sidebar_state = SidebarState()
    screen        = Screen()

    pool = WorkerLanePool(client, status,
                          page_size   = settings.page_size,
                          lookback_ms = settings.tail_lookback_ms,
                          wake        = screen.request_redraw)
    group_actor = LogGroupActor(client, sidebar_state, status, wake=screen.request_redraw)
    orchestrator = Orchestrator(pool, Sidebar(sidebar_state, status), group_actor, status, events,
                                on_render = screen.request_redraw,
                                on_exit   = screen.request_exit)
    pump = InputPump(events, settings.tick_interval, settings.tail_interval,
                     on_tail_tick=pool.broadcast_tail_tick)
    screen.attach(orchestrator, pump)
    screen.open()

    pool.start()
    group_actor.start()
    pump.start()
    orchestrator.list_groups(settings.prefix)
    orchestrator.start()
    try:
        screen.run()
    except KeyboardInterrupt:
        logger.info('interrupted')
    finally:
        pump.stop()
        orchestrator.stop()
        orchestrator.join(2.0)
        pump.join(1.0)


def main(argv=None) -> None:
    args = build_parser().parse_args(argv)
    try:
        settings = load_settings(args)
    except ValueError as exc:
        sys.exit(f'Error: {exc}')

    setup_logging(settings.log_level, settings.log_file)
    logger.info('logdeck %s starting (profile=%s, region=%s)',
                __version__, settings.profile, settings.region)

    try:
        client = CloudWatchLogsClient.from_session(settings.profile, settings.region)
    except FetchError as exc:
        sys.exit(f'Error: {exc}')

    run(client, settings)
    logger.info('logdeck stopped')


if __name__ == '__main__':
    main()
