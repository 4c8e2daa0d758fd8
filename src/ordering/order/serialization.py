"""Per-order serialization of workflow commands.

Customer, brand and admin commands against the same order never interleave:
``dispatch`` holds the order's lock for the whole command, including the unit
of work commit and any gateway call the handler makes.
"""

from protean.utils.globals import current_domain
from shared.locking import KeyedLocks

order_locks = KeyedLocks("order")


def dispatch(command):
    """Process ``command`` synchronously while holding its order's lock."""
    with order_locks.hold(command.order_id):
        return current_domain.process(command, asynchronous=False)
