"""CLI entrypoints: serve, deploy a tag by hand, show current releases."""

from __future__ import annotations

import argparse
import json
import sys

from release_deployer.core.config import Settings, load_config
from release_deployer.core.exceptions import DeployerError
from release_deployer.deploy.manager import DeploymentOrchestrator
from release_deployer.utils.logging import bind_deployment_context, setup_logging


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="release-deployer", description="Release Deployer CLI")
    sub = parser.add_subparsers(dest="cmd")

    sub.add_parser("serve", help="Run the webhook server (default)")

    cmd_deploy = sub.add_parser("deploy", help="Deploy a release tag without a webhook")
    cmd_deploy.add_argument("project", help="Configured project name")
    cmd_deploy.add_argument("tag", help="Release tag to deploy")

    sub.add_parser("status", help="Show the current release of every project")

    args = parser.parse_args(argv)

    if args.cmd in (None, "serve"):
        from release_deployer.main import run
        run()
        return 0

    settings = Settings()
    setup_logging(settings.log_level, settings.log_format, settings.log_file)
    try:
        config = load_config(settings)
    except DeployerError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    orchestrator = DeploymentOrchestrator(config, settings)
    try:
        if args.cmd == "status":
            status = {}
            for project in config.projects.values():
                current = orchestrator.current_release(project.name)
                status[project.name] = str(current) if current else None
            print(json.dumps(status, indent=2))
            return 0

        project = config.get_project(args.project)
        if project is None:
            print(f"ERROR: unknown project {args.project}", file=sys.stderr)
            return 2
        bind_deployment_context(project=project.name)
        try:
            record = orchestrator.deploy_tag(project, args.tag)
        except DeployerError as e:
            print(f"ERROR: {e}", file=sys.stderr)
            return 1
        print(json.dumps(record.as_details(), indent=2))
        return 0 if record.succeeded else 1
    finally:
        orchestrator.close()


if __name__ == "__main__":
    sys.exit(main())
