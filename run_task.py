"""
Run an autobuild task end to end from the command line:
upload through the proxy -> dispatch the workflow -> poll -> list / download artifacts.

Usage:
    python run_task.py <task.zip> <task-name> [mode] [--keep-artifacts] [--download DIR]

The GitHub token is read from the credential store (~/.autobuild/credentials.json)
and prompted for on first use. Start the proxy first: python -m autobuild.main
"""
import asyncio
import getpass
import logging
import sys
from pathlib import Path

from autobuild.common.exceptions import AutobuildError
from autobuild.dashboard.session import DashboardSession

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

DEFAULT_MODE = "build"


def prompt_for_token():
    return getpass.getpass("GitHub token (repo + workflow scopes): ").strip() or None


async def main(argv):
    args = [a for a in argv if not a.startswith("--")]
    keep_artifacts = "--keep-artifacts" in argv
    download_dir = None
    if "--download" in argv:
        idx = argv.index("--download")
        if idx + 1 >= len(argv):
            print(__doc__)
            return 2
        download_dir = argv[idx + 1]
        args.remove(download_dir)

    if len(args) < 2:
        print(__doc__)
        return 2

    archive_path = Path(args[0])
    task_name = args[1]
    mode = args[2] if len(args) > 2 else DEFAULT_MODE

    session = DashboardSession(prompt_token=prompt_for_token)
    try:
        outcome = await session.run_task(
            file_name=archive_path.name,
            archive=archive_path.read_bytes(),
            task_name=task_name,
            mode=mode,
            keep_artifacts=keep_artifacts,
        )
        if outcome is None:
            return 1
        if download_dir and outcome.artifacts:
            for artifact in outcome.artifacts:
                await session.download_artifact(artifact, download_dir)
        return 0 if outcome.succeeded else 1
    except AutobuildError as e:
        logger.error(f"❌ {e}")
        return 1
    finally:
        await session.close()


if __name__ == "__main__":
    sys.exit(asyncio.run(main(sys.argv[1:])))
