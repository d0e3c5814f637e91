"""Per-game library code and command tables.

Library functions are ordinary MiniPy source compiled ahead of the learner's
program (see ``VM.load_with_source``); only the bottom-level verbs are native.
"""
from dataclasses import dataclass


@dataclass(frozen=True)
class CommandSpec:
    name: str
    arg_type: str = "none"        # "none", "number" or "string"
    default_arg: float | str | None = None


@dataclass(frozen=True)
class GameProfile:
    name: str
    commands: tuple
    sensors: tuple
    stdlib: str
    # amounts added to move()/turn() blocks that only name a direction
    move_default: float | None = None
    turn_default: float | None = None

    def command_names(self):
        return [c.name for c in self.commands]

    def command_spec(self, name):
        for spec in self.commands:
            if spec.name == name:
                return spec
        return None


MAZE_STDLIB = """\
# maze library
def move(direction):
    if direction == "forward":
        return forward()
    if direction == "backward":
        return backward()
    return False

def turn(direction):
    if direction == "left":
        turnLeft()
    elif direction == "right":
        turnRight()
"""

TURTLE_STDLIB = """\
# turtle library
def move(direction, distance):
    if direction == "forward":
        forward(distance)
    elif direction == "backward":
        backward(distance)

def turn(direction, degrees):
    if direction == "left":
        turnLeft(degrees)
    elif direction == "right":
        turnRight(degrees)

def left(degrees):
    turnLeft(degrees)

def right(degrees):
    turnRight(degrees)
"""

MAZE = GameProfile(
    name="maze",
    commands=(
        CommandSpec("forward"),
        CommandSpec("backward"),
        CommandSpec("turnLeft"),
        CommandSpec("turnRight"),
        CommandSpec("collect"),
    ),
    sensors=(
        "frontBlocked",
        "frontClear",
        "leftClear",
        "rightClear",
        "hasStar",
        "atGoal",
        "notAtGoal",
        "remainingStars",
        "collectedCount",
    ),
    stdlib=MAZE_STDLIB,
)

TURTLE = GameProfile(
    name="turtle",
    commands=(
        CommandSpec("forward", "number", 50.0),
        CommandSpec("backward", "number", 50.0),
        CommandSpec("turnLeft", "number", 90.0),
        CommandSpec("turnRight", "number", 90.0),
        CommandSpec("penUp"),
        CommandSpec("penDown"),
        CommandSpec("setColor", "string", "red"),
        CommandSpec("setWidth", "number", 2.0),
    ),
    sensors=("isPenDown", "getX", "getY", "getAngle"),
    stdlib=TURTLE_STDLIB,
    move_default=50.0,
    turn_default=90.0,
)

GAMES = {
    "maze": MAZE,
    "turtle": TURTLE,
}

# sensors the block editor offers as condition dropdowns; turtle has none
CONDITION_SENSORS = {
    "maze": ("frontBlocked", "frontClear", "leftClear", "rightClear", "hasStar", "atGoal", "notAtGoal"),
    "turtle": (),
}


def get_game(game_type):
    try:
        return GAMES[game_type]
    except KeyError:
        raise ValueError(f"unknown game type: {game_type!r} (expected one of {', '.join(GAMES)})") from None


def stdlib_source(game_type):
    return get_game(game_type).stdlib


@dataclass
class CustomCommand:
    """A level-defined command written in MiniPy; ``arg`` names its argument."""

    name: str
    code: str
    arg_type: str = "none"

    def to_source(self):
        header = f"def {self.name}(arg):" if self.arg_type != "none" else f"def {self.name}():"
        body = self.code.replace("\r\n", "\n").split("\n")
        while body and not body[-1].strip():
            body.pop()
        if not any(line.strip() and not line.strip().startswith("#") for line in body):
            body = ["pass"]
        return "\n".join([header] + ["    " + line if line.strip() else "" for line in body]) + "\n"


def build_prefix(game_type=None, custom_commands=()):
    """Library code placed before a learner's program. Always ends in a newline."""
    parts = []
    if game_type is not None:
        parts.append(stdlib_source(game_type))
    for cmd in custom_commands:
        parts.append(cmd.to_source())
    if not parts:
        return ""
    return "\n".join(p if p.endswith("\n") else p + "\n" for p in parts)
