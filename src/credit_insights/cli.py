"""Command-line interface for statement insights and credit checks."""

import json
import queue
import sys
import uuid
import click
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, Optional
import logging

import httpx

from .analytics.engine import InsightsEngine
from .integrations.bureau_client import BureauClient
from .integrations.mock_bureau import MockBureau
from .models.core import (
    ComputedInsights,
    CreditCheckRequest,
    IngestionOutcome,
    RetryOutcome,
    StatementRecord,
)
from .parsers.base import CsvFormatError
from .parsers.csv_parser import StatementRowParser
from .pipeline import InsightsService, InsightsWorker, StatementProcessor
from .utils.config_manager import ConfigManager
from .utils.error_handler import ErrorCategory, ErrorHandler
from .utils.statement_store import InMemoryStatementStore


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

MOCK_API_KEY = "mock-api-key"
MAX_ERRORS_SHOWN = 10


class CreditInsightsCLI:
    """Wires configuration, parsing, analytics and the bureau client together"""

    def __init__(self, config_path: Optional[str] = None):
        self.config_manager = ConfigManager(config_path)
        self.config = self.config_manager.load_config()
        self.error_handler = ErrorHandler()
        self.parser = StatementRowParser(self.config)

    def ingest_file(self, file_path: str) -> IngestionOutcome:
        data = Path(file_path).read_bytes()
        return self.parser.ingest(data, self.error_handler, statement_id=Path(file_path).name)

    def run_statement(self, file_path: str) -> Dict[str, Any]:
        """Process a CSV end to end through an in-memory store"""
        store = InMemoryStatementStore()
        ready_queue: "queue.Queue[str]" = queue.Queue()

        statement_id = str(uuid.uuid4())
        store.create_statement(statement_id, filename=Path(file_path).name)

        processor = StatementProcessor(
            store,
            parser=self.parser,
            ready_queue=ready_queue,
            config=self.config,
            error_handler=self.error_handler
        )
        outcome = processor.process(statement_id, Path(file_path).read_bytes())

        worker = InsightsWorker(
            InsightsService(store, InsightsEngine()),
            ready_queue,
            error_handler=self.error_handler
        )
        results = worker.run_pending()

        return {
            'statement': store.get_statement(statement_id),
            'outcome': outcome,
            'insights': results.get(statement_id)
        }

    def validate_file(self, file_path: str) -> bool:
        """Check a CSV header, recording a file-format warning when it is unusable"""
        if self.parser.validate_csv_format(Path(file_path).read_bytes()):
            return True

        self.error_handler.log_warning(
            "CSV header needs date, description and amount columns",
            "INVALID_HEADER",
            ErrorCategory.FILE_FORMAT,
            statement_id=Path(file_path).name
        )
        return False

    def check_credit(self, email: str, user_id: Optional[str] = None,
                     mock: bool = False, simulate_failures: bool = False) -> RetryOutcome:
        bureau_config = self.config.bureau
        http_client = None

        if mock:
            api_key = bureau_config.api_key or MOCK_API_KEY
            bureau_config = replace(bureau_config, api_key=api_key)
            mock_bureau = MockBureau(api_key=api_key, simulate_failures=simulate_failures)
            http_client = httpx.Client(transport=mock_bureau.transport())

        try:
            with BureauClient(bureau_config, http_client=http_client,
                              error_handler=self.error_handler) as client:
                return client.check_credit(CreditCheckRequest(email=email, user_id=user_id))
        finally:
            if http_client is not None:
                http_client.close()

    def generate_config_template(self, output_path: str) -> bool:
        """Generate configuration template file"""
        try:
            self.config_manager.save_config_template(output_path)
            return True
        except OSError as e:
            self.error_handler.log_error(
                f"Failed to generate config template: {str(e)}",
                "UNEXPECTED_ERROR",
                context={'output_path': output_path},
                exception=e
            )
            return False


def _echo_outcome(outcome: IngestionOutcome) -> None:
    click.echo(f"  Rows read: {outcome.total_rows}")
    click.echo(f"  Rows parsed: {outcome.successful_rows}")
    click.echo(f"  Rows failed: {outcome.failed_rows}")
    if outcome.period_start:
        click.echo(f"  Period: {outcome.period_start.date()} to {outcome.period_end.date()}")

    if outcome.errors:
        click.echo("  Row errors:")
        for message in outcome.errors[:MAX_ERRORS_SHOWN]:
            click.echo(f"    - {message}")
        if len(outcome.errors) > MAX_ERRORS_SHOWN:
            click.echo(f"    ... and {len(outcome.errors) - MAX_ERRORS_SHOWN} more")


# CLI Commands using Click
@click.group()
@click.option('--config', '-c', help='Path to configuration file')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
@click.pass_context
def cli(ctx, config, verbose):
    """Credit Insights - Statement analytics and credit bureau checks"""

    # Set up logging level
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    ctx.ensure_object(dict)
    ctx.obj['cli'] = CreditInsightsCLI(config)


@cli.command()
@click.argument('file_path', type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def ingest(ctx, file_path):
    """Parse a CSV statement and report row counts"""

    cli_instance = ctx.obj['cli']

    try:
        outcome = cli_instance.ingest_file(file_path)
    except (CsvFormatError, OSError) as e:
        click.echo(f"✗ Error reading statement: {str(e)}")
        sys.exit(1)

    if outcome.successful_rows == 0:
        click.echo(f"✗ No valid transactions found in {file_path}")
        _echo_outcome(outcome)
        sys.exit(1)

    click.echo(f"✓ Parsed {file_path}")
    _echo_outcome(outcome)


@cli.command()
@click.argument('file_path', type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def insights(ctx, file_path):
    """Process a CSV statement and print its insights as JSON"""

    cli_instance = ctx.obj['cli']

    try:
        result = cli_instance.run_statement(file_path)
    except OSError as e:
        click.echo(f"✗ Error reading statement: {str(e)}")
        sys.exit(1)

    statement: StatementRecord = result['statement']
    computed = result['insights']

    if not isinstance(computed, ComputedInsights):
        reason = statement.error_message or statement.insights_error or str(computed)
        click.echo(f"✗ Statement {statement.status.value}: {reason}")
        sys.exit(1)

    click.echo(json.dumps(computed.to_dict(), indent=2))


@cli.command()
@click.argument('file_path', type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def validate(ctx, file_path):
    """Check that a CSV header has date, description and amount columns"""

    cli_instance = ctx.obj['cli']

    if cli_instance.validate_file(file_path):
        click.echo(f"✓ {file_path} has a recognised statement header")
    else:
        click.echo(f"✗ {file_path} needs date, description and amount columns")
        sys.exit(1)


@cli.command('credit-check')
@click.argument('email')
@click.option('--user-id', help='Caller-side user identifier sent with the request')
@click.option('--mock', is_flag=True, help='Use the built-in mock bureau')
@click.option('--simulate-failures', is_flag=True, help='Let the mock bureau fail at random')
@click.pass_context
def credit_check(ctx, email, user_id, mock, simulate_failures):
    """Run a credit check with retries and print the outcome as JSON"""

    cli_instance = ctx.obj['cli']

    outcome = cli_instance.check_credit(email, user_id=user_id, mock=mock,
                                        simulate_failures=simulate_failures)
    click.echo(json.dumps(outcome.to_dict(), indent=2, default=str))

    if not outcome.success:
        sys.exit(1)


@cli.command('config-template')
@click.argument('output_path', default='insights_config.json')
@click.option('--format', type=click.Choice(['json', 'yaml']), default='json', help='Configuration file format')
@click.pass_context
def config_template(ctx, output_path, format):
    """Generate configuration template file"""

    cli_instance = ctx.obj['cli']

    # Adjust extension based on format
    if format == 'yaml' and not output_path.endswith(('.yml', '.yaml')):
        output_path = output_path.replace('.json', '.yml')
    elif format == 'json' and not output_path.endswith('.json'):
        output_path = output_path.replace('.yml', '.json').replace('.yaml', '.json')

    if cli_instance.generate_config_template(output_path):
        click.echo(f"✓ Configuration template generated: {output_path}")
    else:
        click.echo("✗ Failed to generate configuration template")
        sys.exit(1)


if __name__ == '__main__':
    cli()
