"""hostdom — the rendered page the assistant runs against.

A ``HostDocument`` wraps a BeautifulSoup tree with the state a browser
keeps around it (events, focus, values, selection, location).
"""

from hostdom.document import HostDocument, HostEvent
from hostdom.scheduler import AsyncioScheduler, ManualScheduler, Scheduler
from hostdom.selection import Selection, SelectionRange

__all__ = [
    "AsyncioScheduler",
    "HostDocument",
    "HostEvent",
    "ManualScheduler",
    "Scheduler",
    "Selection",
    "SelectionRange",
]
