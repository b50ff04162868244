from .cpu import Cpu, StepOutcome
from .errors import (
    Chip8Error,
    ProgramTooLarge,
    ProtectedMemoryWrite,
    StackOverflow,
    StackUnderflow,
    UnknownOpcode,
)
from .machine import Machine, WaitState
from .quirks import CHIP8, PRESETS, SCHIP, Quirks
from .stepper import DEFAULT_IPT, Stepper
from .timers import TIMER_HZ, tick_timers
