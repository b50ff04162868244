# CHIP-8 INFO
# https://chip-8.github.io/extensions/#chip-8
# https://chip-8.github.io/links/
#
# MASTERING CHIP-8
# https://github.com/mattmikolay/chip-8/wiki/Mastering-CHIP%E2%80%908
#
# TEST SUITE
# https://github.com/Timendus/chip8-test-suite

import enum
import random
from functools import wraps

from . import machine as mc
from .errors import Chip8Error, UnknownOpcode
from .quirks import Quirks


class StepOutcome(enum.Enum):
    EXECUTED = enum.auto()          # one instruction ran to completion
    AWAITING_KEY = enum.auto()      # FX0A is pending, no progress until a key is pressed and released
    AWAITING_TICK = enum.auto()     # a sprite was drawn, no progress until the next timer tick


# ******************** UTILITIES SECTION
def asm(msg):
    """decorator to print out the ASM of the instruction being called"""
    def decorator(fn):
        @wraps(fn)
        def wrapper_fn(*args, **kwargs):
            mem_addr = args[0].current_addr     # args[0] equals self of the decorated method
            vals = fn(*args, **kwargs)          # use the locals() values of each decorated function in the print
            vals['mem_addr'] = mem_addr
            if mc.DEBUG: print(msg.format(**vals))
        return wrapper_fn
    return decorator

def reg_x(opcode):
    return (opcode & 0x0F00) >> 8

def reg_y(opcode):
    return (opcode & 0x00F0) >> 4


# ******************** CPU SECTION
class Cpu:
    """
    fetch, decode and execute CHIP-8 instructions against a Machine

    quirks select among the historical behaviours of the ambiguous opcodes,
    rng is anything exposing randint(a, b) and defaults to the process-wide generator
    """
    def __init__(self, machine, quirks=None, rng=None):
        self.machine = machine
        self.quirks = quirks if quirks is not None else Quirks()
        self.rng = rng if rng is not None else random
        self.current_addr = machine.pc
        self.instructions = {
            0x00E0: self._clear_screen,
            0x00EE: self._return,
            0x1000: self._jump,
            0x2000: self._call_addr,
            0x3000: self._skip_if_eq,
            0x4000: self._skip_if_not_eq,
            0x5000: self._skip_if_eq_regs,
            0x6000: self._set_vk,
            0x7000: self._add_to_vk,
            0x8000: self._set_vx_to_vy,
            0x8001: self._set_vx_or_vy,
            0x8002: self._set_vx_and_vy,
            0x8003: self._set_vx_xor_vy,
            0x8004: self._add_vx_vy,
            0x8005: self._sub_vx_vy,
            0x8006: self._shr,
            0x8007: self._subn_vx_vy,
            0x800E: self._shl,
            0x9000: self._skip_if_not_eq_regs,
            0xA000: self._set_idx,
            0xB000: self._jump_plus,
            0xC000: self._random_byte_and,
            0xD000: self._to_screen,
            0xE09E: self._skip_if_pressed,
            0xE0A1: self._skip_if_not_pressed,
            0xF007: self._set_vx_dt,
            0xF00A: self._wait_keypress,
            0xF015: self._set_dt_vx,
            0xF018: self._set_st,
            0xF01E: self._add_to_idx,
            0xF029: self._select_char,
            0xF033: self._bcd_repr,
            0xF055: self._store_vregs,
            0xF065: self._load_vregs,
        }

    def __str__(self):
        return f"{self.machine}\nQUIRKS:{self.quirks}"

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: CLS")
    def _clear_screen(self, opcode):
        self.machine.screen.clear()
        self.machine.draw = True
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: RET")
    def _return(self, opcode):
        """return from a subroutine"""
        self.machine.pc = self.machine.stack.pop(self.current_addr)
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: JP 0x{address:04x}")
    def _jump(self, opcode):
        address = opcode & 0x0FFF
        self.machine.pc = address
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: CALL 0x{address:04x}")
    def _call_addr(self, opcode):
        address = opcode & 0x0FFF
        self.machine.stack.append(self.machine.pc, self.current_addr)
        self.machine.pc = address
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: SE V{x:X}, {comparison_value}")
    def _skip_if_eq(self, opcode):
        x = reg_x(opcode)
        comparison_value = opcode & 0x00FF
        if self.machine.v_regs[x] == comparison_value:
            self._goto_next_instruction()
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: SNE V{x:X}, {comparison_value}")
    def _skip_if_not_eq(self, opcode):
        x = reg_x(opcode)
        comparison_value = opcode & 0x00FF
        if self.machine.v_regs[x] != comparison_value:
            self._goto_next_instruction()
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: SE V{x:X}, V{y:X}")
    def _skip_if_eq_regs(self, opcode):
        x, y = reg_x(opcode), reg_y(opcode)
        if self.machine.v_regs[x] == self.machine.v_regs[y]:
            self._goto_next_instruction()
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: SNE V{x:X}, V{y:X}")
    def _skip_if_not_eq_regs(self, opcode):
        x, y = reg_x(opcode), reg_y(opcode)
        if self.machine.v_regs[x] != self.machine.v_regs[y]:
            self._goto_next_instruction()
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: LD V{x:X}, {value}")
    def _set_vk(self, opcode):
        """set the value of one of the 16 variable registers, Vx"""
        x, value = reg_x(opcode), opcode & 0x00FF
        self.machine.v_regs[x] = value
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: ADD V{x:X}, {value}")
    def _add_to_vk(self, opcode):
        """add to the value already present in one of the variable registers, VF is not affected"""
        x, value = reg_x(opcode), opcode & 0x00FF
        self.machine.v_regs[x] = (self.machine.v_regs[x] + value) & 0xFF
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: LD V{x:X}, V{y:X}")
    def _set_vx_to_vy(self, opcode):
        """set the value of Vx equal to that of Vy"""
        x, y = reg_x(opcode), reg_y(opcode)
        self.machine.v_regs[x] = self.machine.v_regs[y]
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: OR V{x:X}, V{y:X}")
    def _set_vx_or_vy(self, opcode):
        """set the value of Vx to Vx OR Vy"""
        x, y = reg_x(opcode), reg_y(opcode)
        self.machine.v_regs[x] |= self.machine.v_regs[y]
        self._reset_vf()
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: AND V{x:X}, V{y:X}")
    def _set_vx_and_vy(self, opcode):
        """set the value of Vx to Vx AND Vy"""
        x, y = reg_x(opcode), reg_y(opcode)
        self.machine.v_regs[x] &= self.machine.v_regs[y]
        self._reset_vf()
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: XOR V{x:X}, V{y:X}")
    def _set_vx_xor_vy(self, opcode):
        """set the value of Vx to Vx XOR Vy"""
        x, y = reg_x(opcode), reg_y(opcode)
        self.machine.v_regs[x] ^= self.machine.v_regs[y]
        self._reset_vf()
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: ADD V{x:X}, V{y:X}")
    def _add_vx_vy(self, opcode):
        """set the value of Vx to Vx + Vy, VF = carry"""
        x, y = reg_x(opcode), reg_y(opcode)
        total = self.machine.v_regs[x] + self.machine.v_regs[y]
        self.machine.v_regs[x] = total & 0xFF   # keep only the lowest 8 bits from the result and store them in Vx
        self.machine.v_regs[0xF] = 1 if total > 0xFF else 0
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: SUB V{x:X}, V{y:X}")
    def _sub_vx_vy(self, opcode):
        """set the value of Vx to Vx - Vy, VF = NOT borrow"""
        x, y = reg_x(opcode), reg_y(opcode)
        vx, vy = self.machine.v_regs[x], self.machine.v_regs[y]
        self.machine.v_regs[x] = (vx - vy) & 0xFF
        self.machine.v_regs[0xF] = 1 if vx >= vy else 0
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: SUBN V{x:X}, V{y:X}")
    def _subn_vx_vy(self, opcode):
        """set the value of Vx to Vy - Vx, VF = NOT borrow"""
        x, y = reg_x(opcode), reg_y(opcode)
        vx, vy = self.machine.v_regs[x], self.machine.v_regs[y]
        self.machine.v_regs[x] = (vy - vx) & 0xFF
        self.machine.v_regs[0xF] = 1 if vy >= vx else 0
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: SHR V{x:X} {{V{y:X}}}")
    def _shr(self, opcode):
        """set Vx equal to Vy SHR 1 (Vx SHR 1 when shift_uses_vy is set), VF = bit shifted out"""
        x, y = reg_x(opcode), reg_y(opcode)
        source = self.machine.v_regs[x if self.quirks.shift_uses_vy else y]
        self.machine.v_regs[x] = source >> 1
        self.machine.v_regs[0xF] = source & 0x1
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: SHL V{x:X} {{V{y:X}}}")
    def _shl(self, opcode):
        """set Vx equal to Vy SHL 1 (Vx SHL 1 when shift_uses_vy is set), VF = bit shifted out"""
        x, y = reg_x(opcode), reg_y(opcode)
        source = self.machine.v_regs[x if self.quirks.shift_uses_vy else y]
        self.machine.v_regs[x] = (source << 1) & 0xFF   # multiply by 2 and keep only the lowest 8 bits from the result
        self.machine.v_regs[0xF] = (source & 0x80) >> 7
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: LD I, 0x{value:03x}")
    def _set_idx(self, opcode):
        """set the value of the I register"""
        value = opcode & 0x0FFF
        self.machine.idx = value
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: JP V{register:X}, 0x{address:03x}")
    def _jump_plus(self, opcode):
        address = opcode & 0x0FFF
        register = reg_x(opcode) if self.quirks.jump_uses_vx else 0x0
        self.machine.pc = (address + self.machine.v_regs[register]) & 0xFFF
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: RND V{x:X}, 0x{kk:02x}")
    def _random_byte_and(self, opcode):
        x, kk = reg_x(opcode), opcode & 0x00FF
        rnd = self.rng.randint(0, 0xFF)
        self.machine.v_regs[x] = rnd & kk
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: DRW V{x:X}, V{y:X}, {n_bytes}")
    def _to_screen(self, opcode):
        """display n-byte sprite starting at memory location I at (Vx, Vy), set VF = collision"""
        m = self.machine
        x, y = reg_x(opcode), reg_y(opcode)
        # the starting position always wraps, only the pixels past the edge are subject to clipping
        x_pos, y_pos = m.v_regs[x] % m.screen.w, m.v_regs[y] % m.screen.h
        n_bytes = opcode & 0x000F
        collision = 0
        for i in range(n_bytes):
            y_coordinate = y_pos + i
            if y_coordinate >= m.screen.h:
                if self.quirks.clip_sprites:
                    break
                y_coordinate %= m.screen.h
            sprite_byte = m.mem[m.idx + i]
            for j in range(8):
                if not sprite_byte & (0x80 >> j):
                    continue
                x_coordinate = x_pos + j
                if x_coordinate >= m.screen.w:
                    if self.quirks.clip_sprites:
                        break
                    x_coordinate %= m.screen.w
                # sprites are XORed onto the existing screen and if this
                # causes any pixel to be erased then VF=1, otherwise VF=0
                if m.screen.flip(x_coordinate, y_coordinate):
                    collision = 1
        m.v_regs[0xF] = collision
        m.draw = True
        if self.quirks.display_wait:
            m.wait = mc.WaitState.AWAITING_TICK
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: SKP V{x:X}")
    def _skip_if_pressed(self, opcode):
        """skip the following instruction if the key corresponding to the hex value stored in Vx is pressed"""
        x = reg_x(opcode)
        key = self.machine.v_regs[x]
        if self.machine.keypad[key]:
            self._goto_next_instruction()
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: SKNP V{x:X}")
    def _skip_if_not_pressed(self, opcode):
        """skip the following instruction if the key corresponding to the hex value stored in Vx is NOT pressed"""
        x = reg_x(opcode)
        key = self.machine.v_regs[x]
        if not self.machine.keypad[key]:
            self._goto_next_instruction()
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: LD V{x:X}, DT")
    def _set_vx_dt(self, opcode):
        """set Vx = DT (delay timer) value"""
        x = reg_x(opcode)
        self.machine.v_regs[x] = self.machine.dt
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: LD V{x:X}, K")
    def _wait_keypress(self, opcode):
        """wait for a key to be pressed and released, then store its value in Vx"""
        x = reg_x(opcode)
        self.machine.start_key_wait(x)
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: LD DT, V{x:X}")
    def _set_dt_vx(self, opcode):
        """set DT (delay timer) = Vx"""
        x = reg_x(opcode)
        self.machine.dt = self.machine.v_regs[x]
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: LD ST, V{register:X}")
    def _set_st(self, opcode):
        """set ST = Vx"""
        register = reg_x(opcode)
        self.machine.st = self.machine.v_regs[register]
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: ADD I, V{register:X}")
    def _add_to_idx(self, opcode):
        """set I = I + Vx"""
        register = reg_x(opcode)
        total = self.machine.idx + self.machine.v_regs[register]
        self.machine.idx = total & 0xFFFF
        # Amiga interpreter behaviour, relied upon by Spacefight 2091!
        if self.quirks.index_overflow_flag:
            self.machine.v_regs[0xF] = 1 if total > 0xFFF else 0
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: LD F, V{register:X}")
    def _select_char(self, opcode):
        """set I to location of sprite for digit Vx"""
        register = reg_x(opcode)
        digit = self.machine.v_regs[register] & 0xF
        self.machine.idx = mc.FONT_START_ADDRESS + digit * mc.FONT_SPRITE_SIZE
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: LD B, V{x:X}")
    def _bcd_repr(self, opcode):
        """store the hundreds digit of Vx in memory at I, the tens digit at I+1, the ones digit at I+2"""
        x = reg_x(opcode)
        value = self.machine.v_regs[x]
        hundreds, tens, ones = value // 100, (value // 10) % 10, value % 10
        self.machine.mem.write_block(self.machine.idx, (hundreds, tens, ones))
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: LD [I], V{x:X}")
    def _store_vregs(self, opcode):
        """store registers V0 through Vx (included) in memory starting at location I"""
        x = reg_x(opcode)
        self.machine.mem.write_block(self.machine.idx, self.machine.v_regs[:x+1])
        self._post_load_store(x)
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: LD V{x:X}, [I]")
    def _load_vregs(self, opcode):
        """read registers V0 through Vx (included) from memory starting at location I"""
        x = reg_x(opcode)
        for offset in range(x + 1):
            self.machine.v_regs[offset] = self.machine.mem[self.machine.idx + offset]
        self._post_load_store(x)
        return locals()

    def _post_load_store(self, x):
        if self.quirks.load_store_increments_i:
            self.machine.idx = (self.machine.idx + x + 1) & 0xFFFF

    def _reset_vf(self):
        if self.quirks.vf_reset:
            self.machine.v_regs[0xF] = 0

    def _goto_next_instruction(self):
        self.machine.pc = (self.machine.pc + 0x2) & 0xFFFF

    def decode(self, opcode):
        """decode opcodes using masks and return respective function"""
        # the opcode lists of the four masks are disjoint, an opcode matches at most one of them
        masks = {
            0xFFFF: [0x00E0,0x00EE],
            0xF0FF: [0xE09E,0xE0A1,0xF007,0xF00A,0xF015,0xF018,0xF01E,0xF029,0xF033,0xF055,0xF065],
            0xF00F: [0x5000,0x8000,0x8001,0x8002,0x8003,0x8004,0x8005,0x8006,0x8007,0x800E,0x9000],
            0xF000: [0x1000,0x2000,0x3000,0x4000,0x6000,0x7000,0xA000,0xB000,0xC000,0xD000],
        }
        for m, ops in masks.items():
            if (opcode & m) in ops:
                return self.instructions[opcode & m]
        raise UnknownOpcode(opcode, self.current_addr)

    def execute_one(self):
        """
        run one fetch/decode/execute cycle and report how it went

        a pending display or key wait is checked first and no instruction is fetched while it lasts,
        faults halt the machine: PC is left on the faulting instruction and every later call raises again
        """
        m = self.machine
        if m.fault is not None:
            raise m.fault
        if m.wait is mc.WaitState.AWAITING_TICK:
            return StepOutcome.AWAITING_TICK
        if m.wait is mc.WaitState.AWAITING_KEY:
            return StepOutcome.EXECUTED if m.finish_key_wait() else StepOutcome.AWAITING_KEY
        # fetch (each instruction is two bytes long)
        self.current_addr = m.pc
        opcode = m.mem[m.pc] << 8 | m.mem[m.pc + 1]
        if mc.DEBUG: print(f"opcode: 0x{opcode:04x}", end="    ")
        self._goto_next_instruction()
        # decode + execute
        try:
            instruction = self.decode(opcode)
            instruction(opcode)
        except Chip8Error as fault:
            m.pc = self.current_addr
            m.fault = fault
            raise
        if m.wait is mc.WaitState.AWAITING_KEY:
            return StepOutcome.AWAITING_KEY
        return StepOutcome.EXECUTED
