import logging

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

COMMAND = "command"
SENSOR = "sensor"


class NativeRegistry:
    """Host-supplied verbs, split into commands (side effects) and sensors (queries).

    Each VM owns its own registry; pass one in to share a prepared table between
    runs, or call ``copy()`` to fork it for a different level.
    """

    def __init__(self):
        self._commands = {}
        self._sensors = {}

    def register_command(self, name, fn):
        # re-registering a name replaces the old binding
        self._sensors.pop(name, None)
        self._commands[name] = fn
        logger.debug("registered command %s", name)

    def register_sensor(self, name, fn):
        self._commands.pop(name, None)
        self._sensors[name] = fn
        logger.debug("registered sensor %s", name)

    def unregister(self, name):
        found = name in self._commands or name in self._sensors
        self._commands.pop(name, None)
        self._sensors.pop(name, None)
        return found

    def lookup(self, name):
        """Return ``(kind, fn)`` or ``(None, None)`` when the name is unknown."""
        if name in self._commands:
            return COMMAND, self._commands[name]
        if name in self._sensors:
            return SENSOR, self._sensors[name]
        return None, None

    def has(self, name):
        return name in self._commands or name in self._sensors

    def commands(self):
        return sorted(self._commands)

    def sensors(self):
        return sorted(self._sensors)

    def names(self):
        return sorted(set(self._commands) | set(self._sensors))

    def copy(self):
        other = NativeRegistry()
        other._commands = dict(self._commands)
        other._sensors = dict(self._sensors)
        return other

    def clear(self):
        self._commands.clear()
        self._sensors.clear()

    def __contains__(self, name):
        return self.has(name)

    def __len__(self):
        return len(self._commands) + len(self._sensors)
