from buildtree.logging import Logger, LogLevel


class LoggerStub(Logger):
    """Logger that drops everything."""

    def log(self, _level: LogLevel = LogLevel.INFO, *args, **kwargs) -> None:
        pass

    def push_level(self, level: LogLevel) -> None:
        pass

    def pop_level(self) -> LogLevel:
        return LogLevel.INFO


class RecordingLogger(Logger):
    """Logger that keeps every message (as text) with its level."""

    def __init__(self) -> None:
        self.records: list[tuple[LogLevel, str]] = []

    def log(self, level: LogLevel = LogLevel.INFO, *args, **kwargs) -> None:
        self.records.append((level, " ".join(str(a) for a in args)))

    def push_level(self, level: LogLevel) -> None:
        pass

    def pop_level(self) -> LogLevel:
        return LogLevel.INFO

    def messages(self, level: LogLevel | None = None) -> list[str]:
        return [text for lvl, text in self.records if level is None or lvl == level]

    def text(self) -> str:
        return "\n".join(self.messages())


logger_stub = LoggerStub()
