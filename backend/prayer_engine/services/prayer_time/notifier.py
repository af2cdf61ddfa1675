# Process-wide broadcast of freshly revalidated prayer times.
from blinker import Namespace

prayer_signals = Namespace()

# Sent with keyword arguments `date` and `timings` after a background refresh stores a fresh value.
timings_refreshed = prayer_signals.signal('timings-refreshed')


def notify_timings_refreshed(sender, date_obj, timings):
    timings_refreshed.send(sender, date=date_obj, timings=timings)


def subscribe_to_refreshes(receiver, weak=False):
    """Connects a receiver. Strong references by default so lambdas stay subscribed."""
    timings_refreshed.connect(receiver, weak=weak)
    return receiver


def unsubscribe_from_refreshes(receiver):
    timings_refreshed.disconnect(receiver)
