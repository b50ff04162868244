import enum
import os

from .errors import ProgramTooLarge, ProtectedMemoryWrite, StackOverflow, StackUnderflow


# ******************** STATIC SECTION
C8_FONTS = [0xF0, 0x90, 0x90, 0x90, 0xF0,  # 0
            0x20, 0x60, 0x20, 0x20, 0x70,  # 1
            0xF0, 0x10, 0xF0, 0x80, 0xF0,  # 2
            0xF0, 0x10, 0xF0, 0x10, 0xF0,  # 3
            0x90, 0x90, 0xF0, 0x10, 0x10,  # 4
            0xF0, 0x80, 0xF0, 0x10, 0xF0,  # 5
            0xF0, 0x80, 0xF0, 0x90, 0xF0,  # 6
            0xF0, 0x10, 0x20, 0x40, 0x40,  # 7
            0xF0, 0x90, 0xF0, 0x90, 0xF0,  # 8
            0xF0, 0x90, 0xF0, 0x10, 0xF0,  # 9
            0xF0, 0x90, 0xF0, 0x90, 0x90,  # A
            0xE0, 0x90, 0xE0, 0x90, 0xE0,  # B
            0xF0, 0x80, 0x80, 0x80, 0xF0,  # C
            0xE0, 0x90, 0x90, 0x90, 0xE0,  # D
            0xF0, 0x80, 0xF0, 0x80, 0xF0,  # E
            0xF0, 0x80, 0xF0, 0x80, 0x80]  # F

MEMORY_SIZE = 4096
FONT_START_ADDRESS = 0x050
FONT_END_ADDRESS = FONT_START_ADDRESS + len(C8_FONTS)     # first address past the font table
FONT_SPRITE_SIZE = 5
ROM_START_ADDRESS = 0x200
MAX_PROGRAM_SIZE = MEMORY_SIZE - ROM_START_ADDRESS
STACK_SIZE = 16
REGISTERS_COUNT = 16
KEYS_COUNT = 16
SCREEN_HEIGHT = 32
SCREEN_WIDTH = 64
DEBUG = True if int(os.getenv('DEBUG', 0)) >= 1 else False


# ******************** I/O SECTION
class Framebuffer:
    """64x32 monochrome pixels stored row-major, one byte per pixel"""
    def __init__(self, w=SCREEN_WIDTH, h=SCREEN_HEIGHT):
        self.w, self.h = w, h
        self.buffer = bytearray(w * h)

    def __getitem__(self, xy):
        x, y = xy
        return self.buffer[y * self.w + x]

    def flip(self, x, y):
        """XOR a lit sprite bit into the pixel at (x, y), return True if the pixel got erased"""
        idx = y * self.w + x
        erased = self.buffer[idx] == 1
        self.buffer[idx] ^= 1
        return erased

    def clear(self):
        self.buffer[:] = bytes(len(self.buffer))

    def rows(self):
        """read-only snapshot of the screen, a tuple of h rows each made of w 0/1 values"""
        return tuple(tuple(self.buffer[y * self.w:(y + 1) * self.w]) for y in range(self.h))


class Keypad:
    """state of the 16 hexadecimal keys, True while the key is held down"""
    def __init__(self):
        self.keys = [False] * KEYS_COUNT

    def __getitem__(self, key):
        return self.keys[key & 0xF]

    def __setitem__(self, key, pressed):
        if not 0 <= key < KEYS_COUNT:
            raise ValueError(f"CHIP-8 keys go from 0x0 to 0xF, got {key}")
        self.keys[key] = bool(pressed)

    def untouched(self):
        return not any(self.keys)


# ******************** MEMORY SECTION
# ********** WRAPS A LIST TO REPRESENT A STACK WITH A LIMITED SIZE OF 16 ADDRESSES
class Stack:
    def __init__(self):
        self.addr_list = []

    def __len__(self):
        return len(self.addr_list)

    def __repr__(self):
        return "[" + ", ".join(f"0x{addr:03x}" for addr in self.addr_list) + "]"

    def append(self, address, pc):
        if len(self.addr_list) >= STACK_SIZE:
            raise StackOverflow(pc)
        self.addr_list.append(address)

    def pop(self, pc):
        if not self.addr_list:
            raise StackUnderflow(pc)
        return self.addr_list.pop()

# ********** WRAPS A BYTEARRAY TO REPRESENT THE MAIN MEMORY WITH A LIMITED SIZE OF 4KB
class Memory:
    def __init__(self):
        self.inner = bytearray(MEMORY_SIZE)
        self.inner[FONT_START_ADDRESS:FONT_END_ADDRESS] = bytes(C8_FONTS)

    def __getitem__(self, address):
        return self.inner[address & 0xFFF]     # addresses wrap around the 4KB boundary

    def __setitem__(self, address, value):
        self.write_block(address, (value,))

    def write_block(self, address, values):
        """write consecutive bytes from address on, nothing is written if any of them falls in the font table"""
        addresses = [(address + offset) & 0xFFF for offset in range(len(values))]
        for addr in addresses:
            if FONT_START_ADDRESS <= addr < FONT_END_ADDRESS:
                raise ProtectedMemoryWrite(addr)
        for addr, value in zip(addresses, values):
            self.inner[addr] = value & 0xFF

    def load_program(self, rom):
        """copy the ROM bytes right after the interpreter reserved area, raise if they don't fit"""
        if len(rom) > MAX_PROGRAM_SIZE:
            raise ProgramTooLarge(len(rom), MAX_PROGRAM_SIZE)
        self.inner[ROM_START_ADDRESS:ROM_START_ADDRESS+len(rom)] = rom


# ******************** STATE SECTION
class WaitState(enum.Enum):
    RUNNING = enum.auto()
    AWAITING_TICK = enum.auto()     # a sprite was drawn, nothing runs until the next timer tick
    AWAITING_KEY = enum.auto()      # FX0A is waiting for a key to be pressed and released


class Machine:
    """aggregate mutable state of the virtual machine, recreated for every loaded program"""
    def __init__(self, rom=b""):
        self.mem = Memory()
        self.stack = Stack()
        self.v_regs = [0] * REGISTERS_COUNT
        self.pc = ROM_START_ADDRESS
        self.idx = 0    # specify where the sprites reside in memory
        self.dt = 0     # delay timer, active when non-zero
        self.st = 0     # sound timer, active when non-zero
        self.screen = Framebuffer()
        self.keypad = Keypad()
        self.draw = False
        self.wait = WaitState.RUNNING
        self.wait_register = None   # register receiving the key once FX0A completes
        self.wait_key = None        # first key pressed since FX0A started
        self.wait_released = False
        self.fault = None
        self.load_program(rom)

    def __str__(self):
        registers = f"PC_REGISTER:0x{self.pc:04x} | IDX_REGISTER:0x{self.idx:04x} | VARIABLE_REGISTERS:{self.v_regs}"
        timers = f"DELAY_TIMER:{self.dt} | SOUND_TIMER:{self.st}"
        stack = f"STACK:{self.stack}"
        flags = f"DRAW: {self.draw} | WAIT: {self.wait.name}"
        return f"{registers}\n{timers}\n{stack}\n{flags}"

    def load_program(self, rom):
        self.mem.load_program(rom)
        self.rom = bytes(rom)     # kept so the same program can be started again on reset

    def set_key(self, key, pressed):
        """register a key transition coming from the host and feed a pending FX0A"""
        was_pressed = self.keypad[key & 0xF]
        self.keypad[key] = pressed
        if self.wait is not WaitState.AWAITING_KEY:
            return
        if pressed and not was_pressed and self.wait_key is None:
            self.wait_key = key
        elif not pressed and was_pressed and key == self.wait_key:
            self.wait_released = True

    def start_key_wait(self, register):
        self.wait = WaitState.AWAITING_KEY
        self.wait_register = register
        self.wait_key = None
        self.wait_released = False

    def finish_key_wait(self):
        """complete FX0A if the awaited key has gone down and back up, return True when done"""
        if not self.wait_released:
            return False
        self.v_regs[self.wait_register] = self.wait_key
        self.wait = WaitState.RUNNING
        self.wait_register = self.wait_key = None
        self.wait_released = False
        return True

    def get_framebuffer(self):
        return self.screen.rows()

    def sound_active(self):
        return self.st > 0
