"""Data model shared by the profiler core and the UI."""

from dataclasses import dataclass, asdict, fields
from enum import Enum
from typing import Dict, Any, Optional


class EventStatus(Enum):
    """Execution state reported for a query event."""
    RUNNING = "running"
    COMPLETED = "completed"


METRIC_FIELDS = (
    "wait_time",
    "cpu_time",
    "elapsed_time",
    "reads",
    "writes",
    "logical_reads",
    "row_count",
)

# Fields searched by the feed filter
FILTER_FIELDS = (
    "sql_text",
    "current_statement",
    "database_name",
    "login_name",
    "program_name",
)


@dataclass
class QueryEvent:
    """One observed execution of a statement at a point in time."""
    id: str
    session_id: int
    start_time: str = ""
    captured_at: str = ""
    event_status: EventStatus = EventStatus.RUNNING
    event_name: str = ""
    status: str = ""
    command: str = ""
    wait_type: Optional[str] = None
    wait_time: int = 0
    cpu_time: int = 0
    elapsed_time: int = 0
    reads: int = 0
    writes: int = 0
    logical_reads: int = 0
    row_count: int = 0
    sql_text: str = ""
    current_statement: str = ""
    database_name: str = ""
    login_name: str = ""
    host_name: str = ""
    program_name: str = ""

    @property
    def is_running(self) -> bool:
        return self.event_status is EventStatus.RUNNING

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QueryEvent":
        """Build an event from a wire payload.

        Unknown keys are ignored, missing text fields default to empty.

        Raises:
            ValueError: if the id is missing or a metric is negative.
        """
        if not data.get("id"):
            raise ValueError("Query event payload has no id")

        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}

        values["id"] = str(values["id"])
        values["session_id"] = int(values.get("session_id") or 0)
        values["event_status"] = EventStatus(values.get("event_status", "running"))

        for name in METRIC_FIELDS:
            value = int(values.get(name) or 0)
            if value < 0:
                raise ValueError(f"Metric {name} must be non-negative, got {value}")
            values[name] = value

        for name in FILTER_FIELDS + ("host_name", "start_time", "captured_at",
                                     "event_name", "status", "command"):
            if values.get(name) is None:
                values[name] = ""

        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the wire payload."""
        data = asdict(self)
        data["event_status"] = self.event_status.value
        return data


@dataclass
class ProfilerStatus:
    """Connection and capture snapshot."""
    connected: bool = False
    capturing: bool = False
    error: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProfilerStatus":
        return cls(
            connected=bool(data.get("connected", False)),
            capturing=bool(data.get("capturing", False)),
            error=data.get("error"),
        )

    @property
    def inconsistent(self) -> bool:
        """True when the backend reports capture without a connection."""
        return self.capturing and not self.connected


@dataclass
class ConnectionConfig:
    """Parameters of a single connect request."""
    server_name: str = "localhost"
    authentication: str = "sql"
    username: str = "sa"
    password: str = ""
    database: str = ""
    encrypt: str = "mandatory"
    trust_cert: bool = True

    def __repr__(self) -> str:
        # Keep the password out of logs
        return (
            f"ConnectionConfig(server_name={self.server_name!r}, "
            f"authentication={self.authentication!r}, username={self.username!r}, "
            f"database={self.database!r}, encrypt={self.encrypt!r}, "
            f"trust_cert={self.trust_cert!r})"
        )


@dataclass
class ServerAddress:
    """Resolved server location."""
    host: str
    port: int
    instance: Optional[str] = None


DEFAULT_PORT = 1433
BROWSER_PORT = 1434


def parse_server_name(server_name: str) -> ServerAddress:
    """Parse ``host``, ``host,port``, ``host\\instance`` or ``host\\instance,port``.

    Raises:
        ValueError: if the port is not a valid number.
    """
    address = server_name
    explicit_port = None

    if "," in server_name:
        address, port_str = server_name.rsplit(",", 1)
        port_str = port_str.strip()
        try:
            explicit_port = int(port_str)
        except ValueError:
            raise ValueError(f"Invalid port: {port_str}") from None
        if not 0 < explicit_port < 65536:
            raise ValueError(f"Invalid port: {port_str}")

    instance = None
    if "\\" in address:
        address, instance = address.split("\\", 1)

    if explicit_port is not None:
        port = explicit_port
    else:
        port = BROWSER_PORT if instance else DEFAULT_PORT

    return ServerAddress(host=address, port=port, instance=instance)


class Tone(Enum):
    """Severity used when showing an update message."""
    INFO = "info"
    SUCCESS = "success"
    ERROR = "error"


@dataclass
class UpdateStatus:
    """What the update checker currently shows."""
    checking: bool = False
    message: Optional[str] = None
    tone: Tone = Tone.INFO
