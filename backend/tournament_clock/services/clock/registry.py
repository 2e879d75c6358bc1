import threading
from dataclasses import asdict, dataclass
from typing import Dict, List, Optional


@dataclass
class Connection:
    sid: str
    connected_at: int
    origin: Optional[str] = None
    remote_addr: Optional[str] = None
    user_agent: Optional[str] = None
    name: Optional[str] = None
    role: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


class ConnectionRegistry:
    """Who is attached, for observability only. Holds no timing authority."""

    def __init__(self):
        self._connections: Dict[str, Connection] = {}
        self._lock = threading.Lock()

    def add(self, sid: str, connected_at: int, origin=None, remote_addr=None, user_agent=None) -> Connection:
        connection = Connection(
            sid=sid,
            connected_at=connected_at,
            origin=origin,
            remote_addr=remote_addr,
            user_agent=user_agent,
        )
        with self._lock:
            self._connections[sid] = connection
        return connection

    def identify(self, sid: str, name: Optional[str] = None, role: Optional[str] = None) -> Optional[Connection]:
        with self._lock:
            connection = self._connections.get(sid)
            if connection is None:
                return None
            if name is not None:
                connection.name = str(name)[:64]
            if role is not None:
                connection.role = str(role)[:32]
            return connection

    def remove(self, sid: str) -> Optional[Connection]:
        with self._lock:
            return self._connections.pop(sid, None)

    def __len__(self) -> int:
        return len(self._connections)

    def to_list(self) -> List[dict]:
        with self._lock:
            connections = sorted(self._connections.values(), key=lambda c: c.connected_at)
        return [c.to_dict() for c in connections]
