"""Guest lifecycle flows that need operator confirmation."""

from lifecycle.delete import DeleteEngine, DeleteSession, State, reduce
from lifecycle.timer import GraceTimer

__all__ = ['DeleteEngine', 'DeleteSession', 'GraceTimer', 'State', 'reduce']
