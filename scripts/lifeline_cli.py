#!/usr/bin/env python3
"""
Lifeline-AI CLI

Command-line interface for running a blood-inventory wastage analysis
against CSV data or the blood bank REST backend.
"""

import sys
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

import argparse
import json
import os
from datetime import date

from colorama import init, Fore, Style
from dotenv import load_dotenv
from pydantic import ValidationError

from lifeline.orchestrator import WastageOrchestrator, format_report
from lifeline.schemas.inventory import BloodType, ComponentType
from lifeline.schemas.wastage import WastageEngineConfig, WastageReport
from lifeline.services.provider import CENTRAL_BANK, SnapshotFetchError
from lifeline.services.csv_provider import CSVSnapshotProvider
from lifeline.services.blood_bank_api import BloodBankAPIClient
from lifeline.utils.logging import set_log_level
from lifeline.agui_protocol import (
    StatusUpdate,
    ResultMessage,
    SuggestionsMessage,
    FinalResponse,
    AgentStatus
)

# Initialize colorama for cross-platform colored output
init(autoreset=True)
load_dotenv()


def print_header():
    """Print CLI header"""
    print(f"\n{Fore.CYAN}{'=' * 80}")
    print(f"{Fore.CYAN}🩸 LIFELINE-AI - Blood Inventory Wastage Risk")
    print(f"{Fore.CYAN}{'=' * 80}{Style.RESET_ALL}\n")


def render_agui_message(message):
    """Render an AG-UI message as it is emitted"""
    if isinstance(message, StatusUpdate):
        status_icon = {
            AgentStatus.STARTING: "🔄",
            AgentStatus.WORKING: "⚙️ ",
            AgentStatus.COMPLETED: "✅",
            AgentStatus.FAILED: "❌"
        }.get(message.status, "•")
        color = Fore.RED if message.status == AgentStatus.FAILED else Fore.BLUE
        print(f"{color}{status_icon} [{message.agent}]{Style.RESET_ALL} {message.message}")

    elif isinstance(message, ResultMessage):
        print(f"{Fore.GREEN}✓ {message.agent}:{Style.RESET_ALL} {message.summary}")


def render_final_response(response: FinalResponse, report_markdown: str):
    """Render the report and the suggested follow-ups"""
    print(f"\n{report_markdown}")

    print(f"{Fore.GREEN}{'=' * 80}{Style.RESET_ALL}")
    print(f"{Fore.GREEN}✓ {response.summary}{Style.RESET_ALL}")
    print(f"{Fore.GREEN}{'=' * 80}{Style.RESET_ALL}")
    print(f"\n{Fore.CYAN}Execution time: {response.execution_time_seconds:.2f}s{Style.RESET_ALL}")

    if response.suggestions and response.suggestions.actions:
        print(f"\n{Fore.YELLOW}📋 Suggested Next Actions:{Style.RESET_ALL}")
        for i, action in enumerate(response.suggestions.actions, 1):
            print(f"  {Fore.YELLOW}[{i}]{Style.RESET_ALL} {action.label}")
            print(f"      {Fore.CYAN}{action.description}{Style.RESET_ALL}")


def select_suggestion(suggestions: SuggestionsMessage):
    """Ask the user to pick a follow-up; returns its context or None"""
    if not suggestions or not suggestions.actions:
        return None

    print(f"\n{Fore.YELLOW}Select an action (1-{len(suggestions.actions)}) or press Enter to quit:{Style.RESET_ALL}")
    selection = input(f"{Fore.CYAN}>>> {Style.RESET_ALL}").strip()
    if not selection:
        return None

    try:
        index = int(selection) - 1
    except ValueError:
        print(f"{Fore.RED}Invalid input{Style.RESET_ALL}")
        return None

    if not 0 <= index < len(suggestions.actions):
        print(f"{Fore.RED}Invalid selection{Style.RESET_ALL}")
        return None

    selected = suggestions.actions[index]
    print(f"\n{Fore.GREEN}Executing: {selected.label}{Style.RESET_ALL}\n")
    return selected.context


def build_provider(args):
    """CSV provider by default, REST client with --api"""
    if args.api:
        return BloodBankAPIClient(base_url=args.api_url)
    return CSVSnapshotProvider(args.data_dir)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Lifeline-AI wastage risk analysis",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Network-wide analysis from CSV files
  python scripts/lifeline_cli.py --data-dir data/raw

  # One hospital, platelets only, fixed reference date
  python scripts/lifeline_cli.py --hospital H001 --component platelets --today 2025-01-15

  # Central blood bank lots from the REST backend, JSON output
  python scripts/lifeline_cli.py --api --central --json
        """
    )

    parser.add_argument('--data-dir', type=Path,
                        default=Path(os.environ.get("LIFELINE_DATA_DIR", "data/raw")),
                        help='Root of the CSV data files (default: $LIFELINE_DATA_DIR or data/raw)')
    parser.add_argument('--api', action='store_true',
                        help='Read from the REST backend instead of CSV files')
    parser.add_argument('--api-url', type=str, default=None,
                        help='Backend URL (default: $LIFELINE_API_URL)')

    scope = parser.add_mutually_exclusive_group()
    scope.add_argument('--hospital', type=str, help='Analyze one hospital as the transfer source')
    scope.add_argument('--central', action='store_true', help='Analyze central blood bank lots only')

    parser.add_argument('--component', choices=[c.value for c in ComponentType],
                        help='Restrict to one component type')
    parser.add_argument('--blood-type', choices=[b.value for b in BloodType],
                        help='Restrict to one blood type')
    parser.add_argument('--today', type=date.fromisoformat, default=None,
                        help='Reference date, YYYY-MM-DD (default: today)')
    parser.add_argument('--config', type=Path, default=None,
                        help='JSON file overriding engine thresholds')
    parser.add_argument('--json', action='store_true',
                        help='Print the report as JSON and exit')
    parser.add_argument('--log-level', type=str, default=None,
                        help='Agent log level, e.g. DEBUG or WARNING (default: $LIFELINE_LOG_LEVEL or INFO)')
    parser.add_argument('--interactive', '-i', action='store_true',
                        help='Offer suggested follow-ups after the report')

    return parser.parse_args(argv)


def main(argv=None):
    """Main CLI entry point"""
    args = parse_args(argv)

    try:
        config = WastageEngineConfig.from_file(args.config) if args.config else WastageEngineConfig()
        provider = build_provider(args)
        orchestrator = WastageOrchestrator(provider, config=config, enable_agui=not args.json)
        if args.log_level:
            set_log_level(args.log_level)
    except (OSError, ValueError, ValidationError) as e:
        print(f"{Fore.RED}Failed to initialize: {str(e)}{Style.RESET_ALL}")
        sys.exit(1)

    hospital_id = CENTRAL_BANK if args.central else args.hospital
    component_type = ComponentType(args.component) if args.component else None
    blood_type = BloodType(args.blood_type) if args.blood_type else None

    if not args.json:
        print_header()
        orchestrator.agui.register_callback(render_agui_message)

    while True:
        try:
            if args.json:
                report = orchestrator.analyze(hospital_id, component_type, blood_type, args.today)
                print(json.dumps(report.to_payload(), indent=2))
                return

            response = orchestrator.run(hospital_id, component_type, blood_type, args.today)
            report = WastageReport.model_validate(response.report)
        except SnapshotFetchError as e:
            print(f"\n{Fore.RED}Error: {str(e)}{Style.RESET_ALL}\n")
            sys.exit(1)

        render_final_response(response, format_report(report))

        if not args.interactive:
            return

        context = select_suggestion(response.suggestions)
        if context is None:
            return
        if "blood_type" in context:
            blood_type = BloodType(context["blood_type"])
        if "component_type" in context:
            component_type = ComponentType(context["component_type"])


if __name__ == "__main__":
    main()
