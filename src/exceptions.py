"""
Custom exceptions for the Dispatch Station application.

This module defines application-specific exceptions so that the station can
tell apart the failures an operator can recover from (order server offline,
label rejected, malformed order data) from programming faults.

Scanning stations run next to packing benches, usually on a shared warehouse
network, so collaborator failures are routine:
- The order server restarts or the Wi-Fi drops mid-shift
- Another station already dispatched the order
- An order export contains an item without a quantity

Exception hierarchy:
    DispatchStationError (base)
    ├── NetworkError (order server unreachable / timed out)
    ├── OrderServiceError (server rejected the request)
    │   └── OrderNotFoundError (no such order)
    ├── ValidationError (malformed payload, file or config)
    └── InvariantViolation (scan ledger drift, a programming fault)
"""

from typing import Optional


class DispatchStationError(Exception):
    """
    Base exception for all Dispatch Station errors.

    All application-specific exceptions inherit from this class, so a single
    except clause catches every expected failure:
        try:
            committer.commit_dispatch(order_id, codes, operator_id)
        except DispatchStationError as e:
            logger.error(f"Dispatch failed: {e}")

    Note: This does NOT inherit from built-in errors like ValueError, IOError
    to maintain clear separation between application and system errors.
    """
    pass


class NetworkError(DispatchStationError):
    """
    Raised when the order or inventory server cannot be reached.

    Common scenarios:
    - Server offline or restarting
    - Request timed out (see [Network] ConnectionTimeout)
    - DNS / routing problems on the warehouse network

    The station never retries automatically; the operator rescans or presses
    confirm again once the connection is back.
    """
    pass


class OrderServiceError(DispatchStationError):
    """
    Raised when the order collaborator answers but refuses the request.

    The server message is kept verbatim so it can be shown to the operator
    exactly as the server phrased it (e.g. "Order already dispatched").

    Attributes:
        status_code (int | None): HTTP status code, if the failure came over HTTP
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class OrderNotFoundError(OrderServiceError):
    """Raised when the referenced order does not exist (or is no longer pending)."""
    pass


class ValidationError(DispatchStationError):
    """
    Raised when input validation fails.

    Examples:
    - Order payload without an id or item list
    - Inventory export missing the SKU column
    - Unknown backend name in config.ini
    """
    pass


class InvariantViolation(DispatchStationError):
    """
    Raised when the scan ledger breaks one of its invariants.

    This is a programming fault, not a runtime condition: it is raised only by
    SessionState.check_invariants(), which tests call after every transition.
    """
    pass
