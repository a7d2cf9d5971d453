"""PagerDuty On-Call Notifier - notifies you when your on-call shift starts.

Usage:
    python main.py
    # or via entry point:
    oncall-notifier
"""

import argparse

from oncall_notifier.scheduler import run_with_signal_handling

ENV_HELP = """\
Key environment variables:
  PD_API_TOKEN (required)        PagerDuty REST API token
  PD_SCHEDULE_ID (required)      PagerDuty schedule to monitor
  PD_USER_ID (required)          PagerDuty user expected to be on call
  NOTIFICATION_BACKEND           webhook | ntfy | pushover
  CHECK_INTERVAL                 poll interval in seconds (default 300)
  ADVANCE_NOTIFICATION_TIME      duration before shift for advance alerts (e.g. 2h, 30m)
  NOTIFY_SHIFT_ENDED             also notify when a shift ends (default false)
  STATE_FILE_PATH                path for persisted state (default /data/state.json)
"""


def build_parser() -> argparse.ArgumentParser:
    return argparse.ArgumentParser(
        prog="oncall-notifier",
        description="PagerDuty On-Call Notifier",
        epilog=ENV_HELP,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )


def main(argv: list[str] | None = None) -> None:
    """Entry point for the oncall-notifier."""
    build_parser().parse_args(argv)

    print("PagerDuty On-Call Notifier")
    print("==========================")
    print("Polling PagerDuty for on-call changes...")
    print("Press Ctrl+C to stop.\n")
    run_with_signal_handling()


if __name__ == "__main__":
    main()
