#!/usr/bin/env python3
"""
Facility P&L Reporter - Main Entry Point

Usage:
    python main.py report --hierarchy region --selected 101 --date 2025-06-01
    python main.py districts        # List selectable districts and tags
    python main.py regions          # List selectable regions
    python main.py subsidiaries     # List selectable subsidiaries
    python main.py dates            # List available report months
    python main.py setup            # Validate configuration
    python main.py demo             # End-to-end report over mock data
"""
import os
import sys
import argparse
import logging
import tempfile
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO"):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler('report.log'),
        ]
    )


def setup_environment():
    """Load environment variables from .env file if present."""
    env_file = PROJECT_ROOT / '.env'
    if env_file.exists():
        logger.info("Loading environment from .env file")
        with open(env_file) as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith('#') and '=' in line:
                    key, value = line.split('=', 1)
                    os.environ.setdefault(key.strip(), value.strip())


def _load_bundle():
    from src.data.config_store import ConfigStore
    return ConfigStore().load_bundle()


def _write_outputs(args, result, bundle, pl_type, report_config):
    from src.data.account_hierarchy import RollupMode
    from src.tools.report_renderer import ReportRenderer, write_html_report

    renderer = ReportRenderer(
        bundle.accounts,
        bundle.section_config,
        mode=RollupMode.from_pl_type(pl_type),
        income_account=report_config.income_account,
        company_name=report_config.company_name,
    )

    if args.html:
        write_html_report(args.html, renderer.render_document(result))
        print(f"HTML report: {args.html}")

    if args.excel:
        from src.tools.excel_output import ExcelGenerator
        output = ExcelGenerator(renderer, report_config.output_dir).create_workbook(result, file_path=args.excel)
        print(f"Workbook: {output.file_path}")

    _print_summary(renderer, result)


def _print_summary(renderer, result):
    print("\n" + "="*60)
    print(f"P&L: {result.node.entity_name} ({result.node.type_label})")
    print("="*60)
    for report in renderer.render_all(result):
        header = report.header
        depth = {"Subsidiary": 0, "Region": 1, "District": 2, "District Tag": 2, "Facility": 3}
        indent = "  " * depth.get(header.type_label, 0)
        income = report.node.values.row(renderer.income_account)
        print(f"{indent}{header.type_label}: {header.entity_name}  "
              f"Income {income.month_actual:,.0f} / Budget {income.month_budget:,.0f}")
    print("-"*60)
    print(f"Warehouse queries: {result.fetch_count}")


def cmd_report(args):
    """Assemble and render a report."""
    from config.settings import get_config
    from src.core.fiscal_calendar import FiscalCalendar
    from src.core.observability import Tracer
    from src.data.census import CensusProvider
    from src.reports.assembler import ReportAssembler
    from src.tools.warehouse_client import get_warehouse_client

    config = get_config()
    bundle = _load_bundle()
    report_date = args.date or FiscalCalendar.last_completed_month().isoformat()
    census = CensusProvider.from_csv(args.census, report_date) if args.census else None
    tracer = Tracer(export_dir=Path(config.report.output_dir) / "traces") if args.trace else Tracer()

    assembler = ReportAssembler(get_warehouse_client(), bundle, census=census,
                                report_config=config.report, tracer=tracer)
    pl_type = args.pl_type or config.report.default_pl_type
    result = assembler.assemble_report(
        args.selected,
        args.hierarchy,
        report_date,
        pl_type=pl_type,
        region_filter=args.region_filter,
        subsidiary_filter=args.subsidiary_filter,
    )
    _write_outputs(args, result, bundle, pl_type, config.report)


def _print_items(title, items):
    print("\n" + "="*60)
    print(title)
    print("="*60)
    for item in items:
        print(f"  {item.id:<30} {item.label}")
    print(f"\n  {len(items)} items")


def cmd_districts(args):
    """List selectable districts and district tags."""
    _print_items("DISTRICTS", _load_bundle().organization.selectable_districts())


def cmd_regions(args):
    """List selectable regions."""
    _print_items("REGIONS", _load_bundle().organization.selectable_regions())


def cmd_subsidiaries(args):
    """List selectable subsidiaries."""
    _print_items("SUBSIDIARIES", _load_bundle().organization.selectable_subsidiaries())


def cmd_dates(args):
    """List available report months."""
    from src.core.fiscal_calendar import format_month_label
    from src.tools.warehouse_client import get_warehouse_client

    for d in get_warehouse_client().available_dates():
        print(f"  {d.isoformat()}  {format_month_label(d.isoformat())}")


def cmd_setup(args):
    """Validate configuration and setup."""
    from config.settings import get_config
    from src.core.error_taxonomy import ReportError
    from src.data.config_store import ConfigStore

    print("\n" + "="*60)
    print("CONFIGURATION VALIDATION")
    print("="*60)

    config = get_config()

    print(f"\n📦 Warehouse Configuration:")
    wh = config.warehouse
    checks = [
        ("Project ID", wh.project_id),
        ("Dataset", wh.dataset),
        ("Access token or client credentials", wh.access_token or (wh.token_url and wh.client_id)),
    ]
    for name, value in checks:
        status = "✅" if value else "❌"
        print(f"   {status} {name}: {'Set' if value else 'MISSING'}")

    print(f"\n🗂  Config Store ({config.config_store.location}):")
    store = ConfigStore(config.config_store)
    cs = config.config_store
    for document in (cs.account_document, cs.customer_document, cs.region_document, cs.department_document):
        status = "✅" if store.exists(document) else "❌"
        print(f"   {status} {document}")

    try:
        bundle = store.load_bundle()
        org = bundle.organization
        print(f"\n   Accounts: {bundle.accounts.total_accounts}")
        print(f"   Districts: {len(org.districts)}  Customers: {len(org.customers)}")
        print(f"   Regions: {len(org.regions)}  Subsidiaries: {len(org.subsidiaries)}")
    except ReportError as e:
        print(f"   ❌ {e.classify().user_message} ({e})")

    print(f"\n📄 Report Layout: {config.report.layout_file}")
    for section, accounts in config.report.section_config.items():
        print(f"   {section}: {', '.join(accounts)}")

    print("\n" + "="*60)


def cmd_demo(args):
    """Run a report end to end over generated mock data."""
    from config.settings import ConfigStoreConfig, get_config
    from src.data.census import CensusProvider
    from src.data.config_store import ConfigStore
    from src.reports.assembler import ReportAssembler
    from src.tools.mock_data_generator import (
        MockWarehouse, generate_census_records, generate_config_documents, generate_mock_fact_rows,
    )

    config = get_config()
    store = ConfigStore(ConfigStoreConfig(location=tempfile.mkdtemp(prefix="pnl_config_")))
    for name, document in generate_config_documents().items():
        store.save_document(name, document)

    bundle = store.load_bundle()
    warehouse = MockWarehouse(generate_mock_fact_rows(args.date))
    census = CensusProvider(generate_census_records(args.date), args.date)

    assembler = ReportAssembler(warehouse, bundle, census=census, report_config=config.report)
    pl_type = args.pl_type or config.report.default_pl_type
    result = assembler.assemble_report(args.selected, args.hierarchy, args.date, pl_type=pl_type)
    _write_outputs(args, result, bundle, pl_type, config.report)


def _add_output_args(parser):
    parser.add_argument('--pl-type', choices=['Standard', 'Operational'], default=None,
                        help='Standard (display rollup) or Operational')
    parser.add_argument('--html', help='Write the HTML report to this path')
    parser.add_argument('--excel', help='Write the Excel workbook to this path')


def main():
    setup_environment()

    from config.settings import get_config
    configure_logging(get_config().log_level)

    parser = argparse.ArgumentParser(
        description="Facility P&L Reporter",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py report --hierarchy district --selected tag_Pacific --date 2025-06-01 --html out.html
  python main.py report --hierarchy subsidiary --selected 1 --date 2025-06-01 --region-filter 101
  python main.py demo --hierarchy subsidiary --selected s1 --excel demo.xlsx

Environment Variables:
  WAREHOUSE_PROJECT_ID      Warehouse project
  WAREHOUSE_ACCESS_TOKEN    Static bearer token (or WAREHOUSE_TOKEN_URL + client credentials)
  CONFIG_STORE_LOCATION     Directory or http(s) URL holding the config documents
  FISCAL_YEAR_START_MONTH   First month of the YTD window (default: 1)
        """
    )

    subparsers = parser.add_subparsers(dest='command', help='Command to run')

    # Report command
    report_parser = subparsers.add_parser('report', help='Generate a P&L report')
    report_parser.add_argument('--hierarchy', required=True, choices=['district', 'region', 'subsidiary'])
    report_parser.add_argument('--selected', required=True, help='District id, tag_<Tag>, region or subsidiary id')
    report_parser.add_argument('--date', help='Report month (YYYY-MM-DD, default: last completed month)')
    report_parser.add_argument('--region-filter', help='Region id for subsidiary reports')
    report_parser.add_argument('--subsidiary-filter', help='Subsidiary id for region reports')
    report_parser.add_argument('--census', help='Census CSV (type, customer_code, month, value)')
    report_parser.add_argument('--trace', action='store_true', help='Export a JSON trace of the report')
    _add_output_args(report_parser)
    report_parser.set_defaults(func=cmd_report)

    for name, func, help_text in (
        ('districts', cmd_districts, 'List selectable districts and tags'),
        ('regions', cmd_regions, 'List selectable regions'),
        ('subsidiaries', cmd_subsidiaries, 'List selectable subsidiaries'),
        ('dates', cmd_dates, 'List available report months'),
        ('setup', cmd_setup, 'Validate setup'),
    ):
        subparsers.add_parser(name, help=help_text).set_defaults(func=func)

    # Demo command
    demo_parser = subparsers.add_parser('demo', help='Run a report over mock data')
    demo_parser.add_argument('--hierarchy', default='subsidiary', choices=['district', 'region', 'subsidiary'])
    demo_parser.add_argument('--selected', default='s1', help='Selector in the mock configuration')
    demo_parser.add_argument('--date', default='2025-06-01', help='Report month (YYYY-MM-DD)')
    _add_output_args(demo_parser)
    demo_parser.set_defaults(func=cmd_demo)

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    from src.core.error_taxonomy import ReportError, classify_error

    try:
        args.func(args)
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    except ReportError as e:
        classified = classify_error(e, pipeline_phase=args.command)
        logger.error(f"{classified.category.name}: {classified.message}")
        print(f"\n❌ {classified.user_message}\n   {classified.message}")
        sys.exit(2)
    except Exception as e:
        logger.error(f"Error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
