"""Command-line interface for api-sentinel."""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..utils.config import load_config
from ..utils.error_handling import format_user_error, get_standard_logger

logger = get_standard_logger(__name__)


def _parse_parameters(pairs: Optional[List[str]], raw_json: Optional[str]) -> Dict[str, Any]:
    """Build channel parameters from ``--parameters`` JSON and ``--param key=value`` pairs."""
    parameters: Dict[str, Any] = json.loads(raw_json) if raw_json else {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep:
            raise ValueError(f"Invalid parameter {pair!r}, expected key=value")
        if value.lower() in ("true", "false"):
            parameters[key] = value.lower() == "true"
        else:
            parameters[key] = value
    return parameters


class SentinelCLI:
    """Command-line interface for the breaking-change pipeline."""

    def __init__(self):
        """Initialize the CLI."""
        self.parser = self._create_parser()

    def _create_parser(self) -> argparse.ArgumentParser:
        """Create the argument parser."""
        parser = argparse.ArgumentParser(
            prog="api-sentinel",
            description="API Sentinel - breaking-change detection for OpenAPI/Swagger documents",
            formatter_class=argparse.RawDescriptionHelpFormatter,
            epilog="""
Examples:
  # Compare two versions of an API document
  api-sentinel diff openapi-v1.yaml openapi-v2.yaml

  # Record a new version of a monitored source
  api-sentinel analyze openapi.yaml --source-id payments-spec --project-id payments

  # Gate a deployment in CI
  api-sentinel validate openapi.yaml --project-id payments --environment production

  # Configure and test a Slack channel
  api-sentinel add-channel --project-id payments --type slack --param channel=C0123
  api-sentinel test-alert --type slack --param webhookUrl=https://hooks.slack.com/services/...

  # Serve the HTTP API
  api-sentinel serve --port 8000
            """
        )

        parser.add_argument(
            "--verbose", "-v",
            action="store_true",
            help="Enable verbose output"
        )

        parser.add_argument(
            "--config",
            type=str,
            default=None,
            help="Path to configuration file (default: api_sentinel.toml)"
        )

        parser.add_argument(
            "--database",
            type=str,
            help="SQLite database path (overrides configuration)"
        )

        subparsers = parser.add_subparsers(dest="command", help="Available commands")

        # Diff command
        diff_parser = subparsers.add_parser("diff", help="Compare two API documents")
        diff_parser.add_argument("old", help="Previous version (JSON or YAML)")
        diff_parser.add_argument("new", help="New version (JSON or YAML)")
        diff_parser.add_argument("--json", action="store_true", help="Print the analysis as JSON")
        diff_parser.add_argument("--fail-on-breaking", action="store_true",
                                 help="Exit with status 1 when breaking changes are found")

        # Analyze command
        analyze_parser = subparsers.add_parser("analyze", help="Run the pipeline for a source")
        analyze_parser.add_argument("file", help="API document (JSON or YAML)")
        analyze_parser.add_argument("--source-id", required=True, help="Source identifier")
        analyze_parser.add_argument("--project-id", required=True, help="Project identifier")
        analyze_parser.add_argument("--commit-ref", help="Commit reference of this version")

        # Validate command
        validate_parser = subparsers.add_parser("validate", help="Gate a deployment against the latest version")
        validate_parser.add_argument("file", help="Candidate API document (JSON or YAML)")
        validate_parser.add_argument("--project-id", required=True, help="Project identifier")
        validate_parser.add_argument("--environment", help="Target environment")
        validate_parser.add_argument("--output", help="Write the gate report to this file")

        # Add channel command
        channel_parser = subparsers.add_parser("add-channel", help="Add an alert channel to a project")
        channel_parser.add_argument("--project-id", required=True, help="Project identifier")
        channel_parser.add_argument("--type", required=True, help="Channel type (slack, email, webhook)")
        channel_parser.add_argument("--param", action="append", help="Channel parameter as key=value")
        channel_parser.add_argument("--parameters", help="Channel parameters as a JSON object")

        # Test alert command
        test_parser = subparsers.add_parser("test-alert", help="Send a test alert")
        test_parser.add_argument("--type", required=True, help="Channel type (slack, email, webhook)")
        test_parser.add_argument("--param", action="append", help="Channel parameter as key=value")
        test_parser.add_argument("--parameters", help="Channel parameters as a JSON object")

        # Health command
        health_parser = subparsers.add_parser("health", help="Show source or project health")
        health_group = health_parser.add_mutually_exclusive_group(required=True)
        health_group.add_argument("--source-id", help="Source identifier")
        health_group.add_argument("--project-id", help="Project identifier")

        # Watch command
        watch_parser = subparsers.add_parser("watch", help="Re-analyze a local document periodically")
        watch_parser.add_argument("file", help="API document (JSON or YAML)")
        watch_parser.add_argument("--source-id", required=True, help="Source identifier")
        watch_parser.add_argument("--project-id", required=True, help="Project identifier")
        watch_parser.add_argument("--frequency", default="daily",
                                  help="hourly, daily, weekly or a number of seconds")

        # Serve command
        serve_parser = subparsers.add_parser("serve", help="Serve the HTTP API")
        serve_parser.add_argument("--host", default="127.0.0.1", help="Bind address")
        serve_parser.add_argument("--port", type=int, default=8000, help="Port")

        return parser

    def run(self, args: Optional[List[str]] = None) -> int:
        """Run the CLI with given arguments.

        Args:
            args: Command line arguments (defaults to sys.argv)

        Returns:
            Exit code (0 for success, non-zero for failure)
        """
        parsed_args = self.parser.parse_args(args)

        if parsed_args.verbose:
            logging.getLogger().setLevel(logging.DEBUG)

        if not parsed_args.command:
            self.parser.print_help()
            return 1

        try:
            config = load_config(parsed_args.config)
            if parsed_args.database:
                config["storage"]["database"] = parsed_args.database

            handler_name = f"_handle_{parsed_args.command.replace('-', '_')}"
            handler = getattr(self, handler_name, None)

            if not handler:
                logger.error(f"Unknown command: {parsed_args.command}")
                return 1

            return handler(parsed_args, config)

        except Exception as e:
            logger.error(f"Command failed: {e}")
            print(format_user_error(e))
            if parsed_args.verbose:
                import traceback
                traceback.print_exc()
            return 1

    @staticmethod
    def _read(path: str) -> str:
        return Path(path).read_text(encoding="utf-8")

    @staticmethod
    def _store(config: Dict[str, Any]):
        from ..storage.sqlite_store import SQLiteStore
        return SQLiteStore.from_config(config)

    def _handle_diff(self, args, config) -> int:
        """Handle diff command."""
        from ..classification.severity_classifier import SeverityClassifier
        from ..diffing.document_loader import load_document
        from ..diffing.schema_differ import SchemaDiffer

        logger.info(f"Comparing {args.old} -> {args.new}")

        old_document = load_document(self._read(args.old), args.old)
        new_document = load_document(self._read(args.new), args.new)
        comparison = SchemaDiffer().compare(old_document, new_document)
        analysis = SeverityClassifier().classify(comparison)

        if args.json:
            print(json.dumps(analysis.to_dict(), indent=2))
        else:
            print(f"\n📊 API Diff Summary:")
            print(f"  {analysis.summary}")
            print(f"  Overall severity: {analysis.overall_severity.value}")
            if analysis.breaking_changes:
                print(f"\n🚨 Breaking Changes:")
                for change in analysis.breaking_changes:
                    print(f"  - [{change.severity.value.upper()}] {change.path}: {change.description}")
            if analysis.non_breaking_changes:
                print(f"\n✅ Safe Changes:")
                for change in analysis.non_breaking_changes:
                    print(f"  - {change.path}: {change.description}")
            if analysis.unclassified_kinds:
                print(f"\n⚠️ Unclassified change kinds: {', '.join(analysis.unclassified_kinds)}")

        if args.fail_on_breaking and analysis.has_breaking_changes:
            return 1
        return 0

    def _handle_analyze(self, args, config) -> int:
        """Handle analyze command."""
        from ..alerting.dispatcher import AlertDispatcher
        from ..models import AnalyzeRequest
        from ..pipeline.orchestrator import PipelineOrchestrator

        store = self._store(config)
        orchestrator = PipelineOrchestrator(store, dispatcher=AlertDispatcher.from_config(config, store=store))
        run = asyncio.run(orchestrator.analyze(AnalyzeRequest(
            source_id=args.source_id,
            project_id=args.project_id,
            raw_content=self._read(args.file),
            commit_ref=args.commit_ref,
            source_path=args.file,
        )))

        if run.status == "error":
            print(f"❌ Analysis failed: {run.error}")
            return 1
        if run.status == "unchanged":
            print(f"✅ No changes for source {args.source_id}")
            return 0

        print(f"📊 {run.status.capitalize()} version {run.analysis.new_version_id}: {run.analysis.summary}")
        for outcome in run.alerts:
            status_emoji = "✅" if outcome.success else "❌"
            print(f"  {status_emoji} {outcome.channel_type}: {outcome.message}")
        return 0

    def _handle_validate(self, args, config) -> int:
        """Handle validate command."""
        from ..ci.validation_gate import BLOCKED, DeploymentGate, generate_gate_report

        gate = DeploymentGate(self._store(config))
        decision = gate.evaluate(args.project_id, self._read(args.file), args.environment)

        report = generate_gate_report(decision, args.project_id)
        if args.output:
            Path(args.output).write_text(report, encoding="utf-8")
            logger.info(f"Gate report written to {args.output}")
        print(report)

        return 1 if decision["status"] == BLOCKED else 0

    def _handle_add_channel(self, args, config) -> int:
        """Handle add-channel command."""
        from ..alerting.channels import ChannelSettings, build_channel
        from ..alerting.retry_policy import RetryPolicy
        from ..models import AlertChannelConfig

        parameters = _parse_parameters(args.param, args.parameters)
        channel = build_channel(AlertChannelConfig(args.type, parameters),
                                ChannelSettings.from_config(config), RetryPolicy())

        config_id = self._store(config).add_alert_config(args.project_id, args.type, parameters)
        print(f"✅ Added {channel.name} channel {config_id} to project {args.project_id}")
        return 0

    def _handle_test_alert(self, args, config) -> int:
        """Handle test-alert command."""
        from ..alerting.dispatcher import AlertDispatcher
        from ..models import AlertChannelConfig

        parameters = _parse_parameters(args.param, args.parameters)
        dispatcher = AlertDispatcher.from_config(config)
        result = asyncio.run(dispatcher.send_test(AlertChannelConfig(args.type, parameters)))

        print(f"{'✅' if result.success else '❌'} {result.message}")
        for label, detail in (result.details or {}).items():
            print(f"  {'✅' if detail['success'] else '❌'} {label}: {detail['message']}")
        return 0 if result.success else 1

    def _handle_health(self, args, config) -> int:
        """Handle health command."""
        store = self._store(config)

        if args.source_id:
            health = store.get_source_health(args.source_id)
            if health is None:
                print(f"❓ Unknown source: {args.source_id}")
                return 1
            print(f"Source {health.source_id}: {health.state.value}")
            if health.last_error:
                print(f"  Last error ({health.last_error_at}): {health.last_error}")
            return 1 if health.state.value == "error" else 0

        project_health = store.get_project_health(args.project_id)
        if project_health is None:
            print(f"❓ Unknown project: {args.project_id}")
            return 1
        print(f"Project {args.project_id}: {project_health}")
        for source in store.get_project_sources(args.project_id):
            print(f"  - {source['id']}: {source['health']}")
        return 1 if project_health == "error" else 0

    def _handle_watch(self, args, config) -> int:
        """Handle watch command."""
        from ..alerting.dispatcher import AlertDispatcher
        from ..models import AnalyzeRequest
        from ..pipeline.orchestrator import PipelineOrchestrator

        store = self._store(config)
        orchestrator = PipelineOrchestrator(store, dispatcher=AlertDispatcher.from_config(config, store=store))

        async def fetch():
            return await asyncio.to_thread(self._read, args.file)

        async def watch():
            await orchestrator.analyze(AnalyzeRequest(
                args.source_id, args.project_id, await fetch(), source_path=args.file
            ))
            interval = orchestrator.watch(args.source_id, args.project_id, fetch,
                                          frequency=args.frequency, source_path=args.file)
            print(f"👀 Watching {args.file} every {interval:g}s (Ctrl-C to stop)")
            try:
                await asyncio.Event().wait()
            finally:
                orchestrator.registry.cancel_all()

        try:
            asyncio.run(watch())
        except KeyboardInterrupt:
            print("\n👋 Stopped watching")
        return 0

    def _handle_serve(self, args, config) -> int:
        """Handle serve command."""
        import uvicorn

        from ..api.server import create_app

        uvicorn.run(create_app(config), host=args.host, port=args.port)
        return 0


def main():
    """Main entry point for the CLI."""
    cli = SentinelCLI()
    sys.exit(cli.run())


if __name__ == "__main__":
    main()
