from .cpu import Cpu, StepOutcome
from .machine import Machine
from .quirks import Quirks
from .timers import TIMER_HZ, tick_timers

DEFAULT_IPT = 12    # instructions per timer tick, 720 instructions per second at 60Hz


class Stepper:
    """
    single owner of a Machine, driving instruction execution and timers on two separate logical clocks

    one frame is: up to `instructions_per_tick` calls to execute_one(), stopping as soon as one of them
    reports something other than StepOutcome.EXECUTED (pending display or key wait), then exactly one
    tick_timers(). A fault raised by execute_one() propagates before the timers are ticked.
    The host calls frame() TIMER_HZ times per second, or drives execute_one()/tick_timers() itself.
    """
    def __init__(self, machine, quirks=None, rng=None, instructions_per_tick=DEFAULT_IPT):
        if instructions_per_tick < 1:
            raise ValueError("At least one instruction per tick must be executed")
        self.machine = machine
        self.quirks = quirks if quirks is not None else Quirks()
        self.rng = rng
        self.instructions_per_tick = instructions_per_tick
        self.cpu = Cpu(machine, self.quirks, rng)

    @classmethod
    def from_rom(cls, rom, quirks=None, rng=None, instructions_per_tick=DEFAULT_IPT):
        return cls(Machine(rom), quirks, rng, instructions_per_tick)

    def __str__(self):
        return str(self.cpu)

    @property
    def instructions_per_second(self):
        return self.instructions_per_tick * TIMER_HZ

    @property
    def draw(self):
        """True when the framebuffer changed since the last consume_draw()"""
        return self.machine.draw

    def consume_draw(self):
        self.machine.draw = False

    def reset(self):
        """discard the machine and start its program again, keeping quirks and random source"""
        self.machine = Machine(self.machine.rom)
        self.cpu = Cpu(self.machine, self.quirks, self.rng)

    def execute_one(self):
        return self.cpu.execute_one()

    def tick_timers(self):
        tick_timers(self.machine)

    def frame(self):
        """run one frame and return how many instructions completed in it"""
        executed = 0
        for _ in range(self.instructions_per_tick):
            if self.execute_one() is not StepOutcome.EXECUTED:
                break
            executed += 1
        self.tick_timers()
        return executed

    def set_key(self, key, pressed):
        self.machine.set_key(key, pressed)

    def get_framebuffer(self):
        return self.machine.get_framebuffer()

    def get_sound_active(self):
        return self.machine.sound_active()
