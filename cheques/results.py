"""
Result helpers shared by the cheque services.

Business failures come back as dicts rather than exceptions:

    {'success': False, 'error': 'Cheque not found', 'error_kind': 'not_found'}

Only infrastructure faults (database errors) are raised.
"""

VALIDATION = 'validation'
NOT_FOUND = 'not_found'
CONFLICT = 'conflict'
RATE_LIMITED = 'rate_limited'
LOCKED = 'locked'
DELIVERY_FAILED = 'delivery_failed'

ERROR_KINDS = (VALIDATION, NOT_FOUND, CONFLICT, RATE_LIMITED, LOCKED, DELIVERY_FAILED)


def ok(**data):
    return {'success': True, **data}


def fail(kind, error, **extra):
    return {'success': False, 'error': error, 'error_kind': kind, **extra}
