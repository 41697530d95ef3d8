"""
Console runner for a dispatch station.

Reads one scan per line from stdin (a keyboard-wedge scanner types the code
followed by Enter). Lines starting with ':' are operator commands:

    :manual SKU        confirm one unit of an item without a barcode
    :choose N          pick order N after an ambiguous scan
    :pending           list pending orders
    :pick N            start order N of the last :pending listing
    :confirm [USER]    commit the dispatch
    :cancel            abandon the current order
    :operator USER     sign in an operator
    :status            show the active order and progress
    :history [N]       show the latest dispatches
    :delete-pending    delete every pending order (admin)
    :help              show this help
    :quit              exit
"""
import argparse
import sys
from typing import List, Optional, TextIO

from PySide6.QtCore import QCoreApplication

from dispatch_station import DispatchStation, build_station
from exceptions import ValidationError
from logger import configure_logging, get_logger
from models import Order
from station_config import StationConfig

logger = get_logger(__name__)

LEVEL_MARKERS = {
    'success': '[OK]',
    'info': '[..]',
    'warning': '[!!]',
    'error': '[XX]',
}


class ConsoleStation:
    """Line-oriented front end over a DispatchStation."""

    def __init__(self, station: DispatchStation, out: TextIO = sys.stdout):
        self.station = station
        self.out = out
        self._pending: List[Order] = []

        station.notice.connect(self._on_notice)
        station.order_choice_offered.connect(self._on_choice_offered)
        station.pending_orders_invalidated.connect(self._on_pending_invalidated)

    def _print(self, text: str = ''):
        print(text, file=self.out)

    def _on_notice(self, level: str, status: str, message: str):
        self._print(f"{LEVEL_MARKERS.get(level, '[..]')} {message}")

    def _on_choice_offered(self, orders: list):
        self._print("Several orders contain this item:")
        for index, order in enumerate(orders, start=1):
            customer = order.get('customerName') or ''
            self._print(f"  {index}. {order.get('orderNumber')}  {customer}  ({len(order.get('items', []))} item(s))")
        self._print("Use :choose N")

    def _on_pending_invalidated(self):
        self._pending = []

    def _show_status(self):
        order = self.station.active_order
        if order is None:
            self._print("No active order")
            return
        state = self.station.state
        self._print(f"Order {order.order_number} [{state.phase}] {self.station.progress():.0f}%")
        for item in order.items:
            self._print(f"  {item.sku:<20} {state.count_for(item.sku)}/{item.quantity}  {item.item_name or ''}")
        if state.shipping_label:
            self._print(f"  Label: {state.shipping_label}")

    def _show_pending(self):
        self._pending = self.station.pending_orders()
        if not self._pending:
            self._print("No pending orders")
            return
        for index, order in enumerate(self._pending, start=1):
            self._print(f"  {index}. {order.order_number}  {order.customer_name or ''}  ({order.total_required} unit(s))")

    def _show_history(self, limit: Optional[int]):
        records = self.station.history(limit)
        if not records:
            self._print("No dispatches recorded")
            return
        for record in records:
            self._print(
                f"  {record.dispatched_at:%Y-%m-%d %H:%M}  {record.order.order_number}  "
                f"by {record.operator_id or '-'}  ({len(record.scanned_codes)} code(s))"
            )

    @staticmethod
    def _index(argument: str) -> Optional[int]:
        try:
            return int(argument) - 1
        except ValueError:
            return None

    def handle_line(self, line: str) -> bool:
        """
        Process one input line.

        Returns:
            bool: False when the operator asked to quit
        """
        line = line.strip()
        if not line:
            return True
        if not line.startswith(':'):
            self.station.handle_scan(line)
            self._print(self.station.prompt)
            return True

        command, _, argument = line[1:].partition(' ')
        command = command.lower()
        argument = argument.strip()

        if command in ('quit', 'exit'):
            return False
        if command == 'help':
            self._print(__doc__.strip())
        elif command == 'manual':
            self.station.confirm_item_manually(argument)
        elif command == 'choose':
            index = self._index(argument)
            if index is None:
                self._print("Usage: :choose N")
            else:
                self.station.choose_candidate(index)
        elif command == 'pending':
            self._show_pending()
        elif command == 'pick':
            index = self._index(argument)
            if index is None or not 0 <= index < len(self._pending):
                self._print("Usage: :pick N (after :pending)")
            else:
                self.station.choose_order(self._pending[index])
        elif command == 'confirm':
            self.station.confirm_dispatch(argument or None)
        elif command == 'cancel':
            self.station.cancel()
        elif command == 'operator':
            self.station.set_operator(argument)
            self._print(f"Operator: {self.station.operator_id or '-'}")
        elif command == 'status':
            self._show_status()
        elif command == 'history':
            self._show_history(int(argument) if argument.isdigit() else 10)
        elif command == 'delete-pending':
            self.station.delete_pending_orders()
        else:
            self._print(f"Unknown command :{command}, try :help")
            return True

        self._print(self.station.prompt)
        return True

    def run(self, lines: TextIO) -> None:
        self._print(self.station.prompt)
        for line in lines:
            if not self.handle_line(line):
                break


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Warehouse dispatch scanning station")
    parser.add_argument('--config', default='config.ini', help="Path to config.ini (default: %(default)s)")
    parser.add_argument('--operator', help="Operator signed in at start-up")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    configure_logging(args.config)
    app = QCoreApplication.instance() or QCoreApplication(sys.argv[:1])

    try:
        config = StationConfig.load(args.config)
        if args.operator:
            config.operator_id = args.operator
        station = build_station(config)
    except ValidationError as e:
        logger.error(f"Station start-up failed: {e}")
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    console = ConsoleStation(station)
    try:
        console.run(sys.stdin)
    except KeyboardInterrupt:
        logger.info("Interrupted by operator")
    finally:
        if station.active_order is not None:
            logger.warning(f"Exiting with order {station.active_order.order_number} still open")
        app.quit()
    return 0


if __name__ == "__main__":
    sys.exit(main())
