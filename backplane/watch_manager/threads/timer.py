"""
The TimerThread runs scheduled events, such as requeues, on one shared thread
"""

# Standard
from datetime import datetime
from heapq import heappop, heappush
from typing import Any, Callable, List, Optional
import threading

# First Party
import alog

# Local
from ..utils import MIN_SLEEP_TIME, TimerEvent
from .base import ThreadBase

log = alog.use_channel("TMRTHRD")


class TimerThread(ThreadBase):
    """Similar to threading.Timer except that one thread serves every event"""

    def __init__(self, name: Optional[str] = None):
        super().__init__(name=name or "timer_thread", daemon=True)

        # A heap guarded by the notify condition rather than a PriorityQueue
        # since the condition already provides the synchronization
        self.timer_heap: List[TimerEvent] = []
        self.notify_condition = threading.Condition()

    def run(self):
        """Sleep until the next scheduled event and run every due action"""
        if not self.check_preconditions():
            return

        while True:
            with self.notify_condition:
                time_to_sleep = self._get_time_to_sleep()
                if time_to_sleep:
                    log.debug4("Timer waiting %ss until next event", time_to_sleep)
                else:
                    log.debug4("Timer waiting until event queued")
                self.notify_condition.wait(timeout=time_to_sleep)

            if not self.check_preconditions():
                return

            for event in self._get_all_current_events():
                log.debug2("Timer executing action for event: %s", event)
                try:
                    event.action(*event.args, **event.kwargs)
                except Exception as exc:  # pylint: disable=broad-except
                    log.error("Timer event %s failed: %s", event, exc, exc_info=True)

    ## Class Interface #########################################################

    def stop_thread(self):
        """Override stop_thread to wake the control loop"""
        super().stop_thread()
        with self.notify_condition:
            self.notify_condition.notify_all()

    ## Public Interface ########################################################

    def put_event(
        self, time: datetime, action: Callable, *args: Any, **kwargs: Any
    ) -> Optional[TimerEvent]:
        """Push an event to the timer

        Args:
            time:  datetime
                The datetime to execute the event at
            action:  Callable
                The action to execute
            *args:  Any
                Args to pass to the action
            **kwargs:  Any
                Kwargs to pass to the action

        Returns:
            event:  Optional[TimerEvent]
                TimerEvent describing the event that can be cancelled, or None
                if the timer is stopped
        """
        if self.should_stop():
            return None

        event = TimerEvent(time=time, action=action, args=args, kwargs=kwargs)
        with self.notify_condition:
            heappush(self.timer_heap, event)
            self.notify_condition.notify_all()
        return event

    ## Implementation Details ##################################################

    def _get_time_to_sleep(self) -> Optional[float]:
        """Seconds until the next event, or None if there is none"""
        with self.notify_condition:
            if not self.timer_heap:
                return None
            time_to_sleep = (self.timer_heap[0].time - datetime.now()).total_seconds()
            return max(time_to_sleep, MIN_SLEEP_TIME)

    def _get_all_current_events(self) -> List[TimerEvent]:
        """Pop every due event, dropping cancelled ones"""
        event_list = []
        with self.notify_condition:
            while self.timer_heap and self.timer_heap[0].time <= datetime.now():
                event = heappop(self.timer_heap)
                if event.stale:
                    log.debug2("Skipping timer event %s", event)
                    continue
                event_list.append(event)
        return event_list
