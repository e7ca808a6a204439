"""
Ledger audit

Usage:
    python manage.py audit_ledger            # Replay the ledger, check cash cache and asset value
    python manage.py audit_ledger --stock    # Also check cached stock counters against batches
"""

from django.core.management.base import BaseCommand, CommandError

from finance.services import FinanceService
from storefront.base_service import money_str, round_money


class Command(BaseCommand):
    help = 'Replay the financial ledger and report any balance that does not add up'

    def add_arguments(self, parser):
        parser.add_argument('--stock', action='store_true', help='Check cached stock counters against batches')

    def handle(self, *args, **options):
        failures = 0

        failures += self.check_replay()
        failures += self.check_assets()
        if options['stock']:
            failures += self.check_stock()

        if failures:
            raise CommandError(f'Ledger audit failed with {failures} problem(s)')

        self.stdout.write(self.style.SUCCESS('Ledger audit passed'))

    def check_replay(self):
        report = FinanceService.replay_ledger()
        self.stdout.write(f"Replayed {report['checked']} transaction(s)")

        for mismatch in report['mismatches']:
            self.stdout.write(self.style.ERROR(
                f"  Transaction {mismatch['transaction_id']}: "
                f"stored {mismatch['stored']} expected {mismatch['expected']}"
            ))

        failures = len(report['mismatches'])
        if not report['cash_cache_matches']:
            self.stdout.write(self.style.ERROR(
                f"  Cash cache {report['cached_cash']} != ledger {report['final_cash']}"
            ))
            failures += 1

        return failures

    def check_assets(self):
        ledger_assets = FinanceService.get_current_asset_balance()
        actual = FinanceService.compute_asset_values()['total_inventory_value']
        self.stdout.write(f'Asset balance: ledger {money_str(ledger_assets)}, inventory {money_str(actual)}')

        if round_money(ledger_assets) != actual:
            self.stdout.write(self.style.ERROR('  Ledger asset balance does not match inventory value'))
            return 1
        return 0

    def check_stock(self):
        problems = FinanceService.check_stock_counters()
        for problem in problems:
            self.stdout.write(self.style.ERROR(
                f"  {problem['resource']} {problem['id']}: cached {problem['cached']}, batches {problem['batches']}"
            ))
        if not problems:
            self.stdout.write('Stock counters match their batches')
        return len(problems)
