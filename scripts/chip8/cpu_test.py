import random
import unittest

from chip8.cpu import Cpu, StepOutcome
from chip8.errors import ProtectedMemoryWrite, StackOverflow, StackUnderflow, UnknownOpcode
from chip8.machine import Machine, WaitState
from chip8.quirks import Quirks
from chip8.timers import tick_timers

NO_WAIT = Quirks(display_wait=False)


def assemble(*opcodes):
    return b"".join(op.to_bytes(2, "big") for op in opcodes)

def make_cpu(*opcodes, quirks=NO_WAIT, rng=None):
    m = Machine(assemble(*opcodes))
    return Cpu(m, quirks, rng), m

def run(cpu, steps):
    for _ in range(steps):
        cpu.execute_one()


class FixedRandom:
    def __init__(self, value):
        self.value = value

    def randint(self, a, b):
        return self.value


class TestControlFlow(unittest.TestCase):
    def test_clear_screen(self):
        cpu, m = make_cpu(0x00E0)
        m.screen.flip(3, 4)
        run(cpu, 1)
        self.assertTrue(all(p == 0 for row in m.get_framebuffer() for p in row))
        self.assertTrue(m.draw)

    def test_jump(self):
        cpu, m = make_cpu(0x1234)
        run(cpu, 1)
        self.assertEqual(m.pc, 0x234)

    def test_call_then_return_resumes_after_call(self):
        for nnn in (0x0A0, 0x202, 0x300, 0x4AE, 0xFFC):
            cpu, m = make_cpu(0x2000 | nnn)
            m.mem[nnn], m.mem[nnn + 1] = 0x00, 0xEE
            run(cpu, 1)
            self.assertEqual(m.pc, nnn)
            self.assertEqual(len(m.stack), 1)
            run(cpu, 1)
            self.assertEqual(m.pc, 0x202)
            self.assertEqual(len(m.stack), 0)

    def test_stack_overflow(self):
        cpu, m = make_cpu(0x2200)
        run(cpu, 16)
        with self.assertRaises(StackOverflow):
            cpu.execute_one()
        self.assertEqual(m.pc, 0x200)
        self.assertEqual(len(m.stack), 16)

    def test_fault_halts_machine(self):
        cpu, m = make_cpu(0x00EE, 0x6101)
        with self.assertRaises(StackUnderflow) as first:
            cpu.execute_one()
        with self.assertRaises(StackUnderflow) as second:
            cpu.execute_one()
        self.assertIs(first.exception, second.exception)
        self.assertEqual(m.pc, 0x200)
        self.assertEqual(m.v_regs[1], 0)

    def test_skip_if_eq_immediate(self):
        cpu, m = make_cpu(0x6A12, 0x3A12)
        run(cpu, 2)
        self.assertEqual(m.pc, 0x206)
        cpu, m = make_cpu(0x6A12, 0x3A13)
        run(cpu, 2)
        self.assertEqual(m.pc, 0x204)

    def test_skip_if_not_eq_immediate(self):
        cpu, m = make_cpu(0x6A12, 0x4A13)
        run(cpu, 2)
        self.assertEqual(m.pc, 0x206)
        cpu, m = make_cpu(0x6A12, 0x4A12)
        run(cpu, 2)
        self.assertEqual(m.pc, 0x204)

    def test_skip_if_eq_registers(self):
        cpu, m = make_cpu(0x6107, 0x6207, 0x5120)
        run(cpu, 3)
        self.assertEqual(m.pc, 0x208)
        cpu, m = make_cpu(0x6107, 0x6208, 0x5120)
        run(cpu, 3)
        self.assertEqual(m.pc, 0x206)

    def test_skip_if_not_eq_registers(self):
        cpu, m = make_cpu(0x6107, 0x6208, 0x9120)
        run(cpu, 3)
        self.assertEqual(m.pc, 0x208)
        cpu, m = make_cpu(0x6107, 0x6207, 0x9120)
        run(cpu, 3)
        self.assertEqual(m.pc, 0x206)

    def test_jump_plus_v0(self):
        cpu, m = make_cpu(0x6005, 0x6302, 0xB300)
        run(cpu, 3)
        self.assertEqual(m.pc, 0x305)

    def test_jump_plus_vx(self):
        cpu, m = make_cpu(0x6005, 0x6302, 0xB300, quirks=NO_WAIT._replace(jump_uses_vx=True))
        run(cpu, 3)
        self.assertEqual(m.pc, 0x302)


class TestRegisters(unittest.TestCase):
    def test_load_and_add_immediate_wraps_without_flag(self):
        cpu, m = make_cpu(0x6F07, 0x61FF, 0x7102)
        run(cpu, 3)
        self.assertEqual(m.v_regs[1], 0x01)
        self.assertEqual(m.v_regs[0xF], 0x07)

    def test_copy_register(self):
        cpu, m = make_cpu(0x62AB, 0x8120)
        run(cpu, 2)
        self.assertEqual(m.v_regs[1], 0xAB)

    def test_state_locality(self):
        for opcode, touched in ((0x6155, {1}), (0x7203, {2}), (0x8340, {3}), (0xA123, set()), (0x1206, set())):
            cpu, m = make_cpu(opcode)
            m.v_regs = list(range(16))
            run(cpu, 1)
            for r in range(16):
                if r not in touched:
                    self.assertEqual(m.v_regs[r], r, f"V{r:X} changed by 0x{opcode:04x}")


class TestLogic(unittest.TestCase):
    def check(self, op, expected, quirks):
        cpu, m = make_cpu(0x6F05, 0x610C, 0x620A, op, quirks=quirks)
        run(cpu, 4)
        self.assertEqual(m.v_regs[1], expected)
        return m.v_regs[0xF]

    def test_vf_reset_enabled(self):
        for op, expected in ((0x8121, 0x0E), (0x8122, 0x08), (0x8123, 0x06)):
            self.assertEqual(self.check(op, expected, NO_WAIT), 0)

    def test_vf_reset_disabled(self):
        quirks = NO_WAIT._replace(vf_reset=False)
        for op, expected in ((0x8121, 0x0E), (0x8122, 0x08), (0x8123, 0x06)):
            self.assertEqual(self.check(op, expected, quirks), 5)


class TestArithmetic(unittest.TestCase):
    def regs_after(self, vx, vy, op):
        cpu, m = make_cpu(0x6100 | vx, 0x6200 | vy, op)
        run(cpu, 3)
        return m.v_regs[1], m.v_regs[0xF]

    def test_add_with_carry(self):
        self.assertEqual(self.regs_after(0xFF, 0x01, 0x8124), (0x00, 1))
        self.assertEqual(self.regs_after(0x10, 0x20, 0x8124), (0x30, 0))

    def test_sub(self):
        self.assertEqual(self.regs_after(0x01, 0x02, 0x8125), (0xFF, 0))
        self.assertEqual(self.regs_after(0x05, 0x03, 0x8125), (0x02, 1))
        self.assertEqual(self.regs_after(0x04, 0x04, 0x8125), (0x00, 1))

    def test_subn(self):
        self.assertEqual(self.regs_after(0x02, 0x05, 0x8127), (0x03, 1))
        self.assertEqual(self.regs_after(0x05, 0x02, 0x8127), (0xFD, 0))

    def test_flag_wins_when_vf_is_the_destination(self):
        cpu, m = make_cpu(0x6FFF, 0x6101, 0x8F14)
        run(cpu, 3)
        self.assertEqual(m.v_regs[0xF], 1)


class TestShifts(unittest.TestCase):
    def test_shr_toggle_off_shifts_vy_on_shifts_vx(self):
        cpu, m = make_cpu(0x6203, 0x61F0, 0x8126, quirks=NO_WAIT._replace(shift_uses_vy=False))
        run(cpu, 3)
        self.assertEqual((m.v_regs[1], m.v_regs[0xF]), (0b00000001, 1))
        cpu, m = make_cpu(0x6203, 0x61F0, 0x8126, quirks=NO_WAIT._replace(shift_uses_vy=True))
        run(cpu, 3)
        self.assertEqual((m.v_regs[1], m.v_regs[0xF]), (0xF0 >> 1, 0))

    def test_shr_from_vy(self):
        cpu, m = make_cpu(0x6203, 0x61F0, 0x8126)
        run(cpu, 3)
        self.assertEqual(m.v_regs[1], 0b00000001)
        self.assertEqual(m.v_regs[0xF], 1)
        self.assertEqual(m.v_regs[2], 0b00000011)

    def test_shr_in_place(self):
        cpu, m = make_cpu(0x6203, 0x61F0, 0x8126, quirks=NO_WAIT._replace(shift_uses_vy=True))
        run(cpu, 3)
        self.assertEqual(m.v_regs[1], 0x78)
        self.assertEqual(m.v_regs[0xF], 0)
        self.assertEqual(m.v_regs[2], 0b00000011)

    def test_shl_from_vy(self):
        cpu, m = make_cpu(0x6281, 0x6120, 0x812E)
        run(cpu, 3)
        self.assertEqual(m.v_regs[1], 0x02)
        self.assertEqual(m.v_regs[0xF], 1)

    def test_shl_in_place(self):
        cpu, m = make_cpu(0x6281, 0x6120, 0x812E, quirks=NO_WAIT._replace(shift_uses_vy=True))
        run(cpu, 3)
        self.assertEqual(m.v_regs[1], 0x40)
        self.assertEqual(m.v_regs[0xF], 0)


class TestIndex(unittest.TestCase):
    def test_set_index(self):
        cpu, m = make_cpu(0xA2F0)
        run(cpu, 1)
        self.assertEqual(m.idx, 0x2F0)

    def test_add_to_index_without_overflow_flag(self):
        cpu, m = make_cpu(0x6F09, 0xAFFF, 0x6102, 0xF11E)
        run(cpu, 4)
        self.assertEqual(m.idx, 0x1001)
        self.assertEqual(m.v_regs[0xF], 9)

    def test_add_to_index_with_overflow_flag(self):
        quirks = NO_WAIT._replace(index_overflow_flag=True)
        cpu, m = make_cpu(0x6F09, 0xAFFF, 0x6102, 0xF11E, quirks=quirks)
        run(cpu, 4)
        self.assertEqual(m.v_regs[0xF], 1)
        cpu, m = make_cpu(0x6F09, 0xA100, 0x6102, 0xF11E, quirks=quirks)
        run(cpu, 4)
        self.assertEqual(m.idx, 0x102)
        self.assertEqual(m.v_regs[0xF], 0)

    def test_font_character(self):
        cpu, m = make_cpu(0x610A, 0xF129)
        run(cpu, 2)
        self.assertEqual(m.idx, 0x82)
        self.assertEqual([m.mem[m.idx + i] for i in range(5)], [0xF0, 0x90, 0xF0, 0x90, 0x90])

    def test_bcd(self):
        cpu, m = make_cpu(0x617B, 0xA300, 0xF133)
        run(cpu, 3)
        self.assertEqual([m.mem[0x300], m.mem[0x301], m.mem[0x302]], [1, 2, 3])
        self.assertEqual(m.idx, 0x300)

    def check_store_load(self, quirks):
        cpu, m = make_cpu(0x6011, 0x6122, 0x6233, 0x6344, 0xA300, 0xF355,
                          0x6000, 0x6100, 0x6200, 0x6300, 0xA300, 0xF365, quirks=quirks)
        run(cpu, 6)
        stored_idx = m.idx
        run(cpu, 6)
        self.assertEqual(m.v_regs[:4], [0x11, 0x22, 0x33, 0x44])
        return stored_idx, m.idx

    def test_store_load_increments_index(self):
        self.assertEqual(self.check_store_load(NO_WAIT), (0x304, 0x304))

    def test_store_load_leaves_index(self):
        quirks = NO_WAIT._replace(load_store_increments_i=False)
        self.assertEqual(self.check_store_load(quirks), (0x300, 0x300))

    def test_store_into_font_table(self):
        cpu, m = make_cpu(0xA050, 0xF055)
        run(cpu, 1)
        with self.assertRaises(ProtectedMemoryWrite):
            cpu.execute_one()
        self.assertEqual(m.mem[0x050], 0xF0)
        self.assertEqual(m.pc, 0x202)

    def test_store_running_into_font_table_writes_nothing(self):
        cpu, m = make_cpu(0x6011, 0x6122, 0x6233, 0xA04E, 0xF255)
        run(cpu, 4)
        with self.assertRaises(ProtectedMemoryWrite) as ctx:
            cpu.execute_one()
        self.assertEqual(ctx.exception.address, 0x050)
        self.assertEqual((m.mem[0x04E], m.mem[0x04F], m.mem[0x050]), (0, 0, 0xF0))
        self.assertEqual(m.idx, 0x04E)

    def test_bcd_running_into_font_table_writes_nothing(self):
        cpu, m = make_cpu(0x617B, 0xA04F, 0xF133)
        run(cpu, 2)
        with self.assertRaises(ProtectedMemoryWrite):
            cpu.execute_one()
        self.assertEqual(m.mem[0x04F], 0)


class TestRandom(unittest.TestCase):
    def test_random_is_masked(self):
        cpu, m = make_cpu(0xC10F, rng=FixedRandom(0xAB))
        run(cpu, 1)
        self.assertEqual(m.v_regs[1], 0x0B)

    def test_seeded_random_is_deterministic(self):
        values = []
        for _ in range(2):
            cpu, m = make_cpu(0xC1FF, 0xC2FF, rng=random.Random(42))
            run(cpu, 2)
            values.append(m.v_regs[1:3])
        self.assertEqual(values[0], values[1])


class TestDraw(unittest.TestCase):
    def test_draw_and_collision(self):
        cpu, m = make_cpu(0x6000, 0xA050, 0xD005, 0xD005)
        run(cpu, 3)
        fb = m.get_framebuffer()
        self.assertEqual(fb[0][:5], (1, 1, 1, 1, 0))
        self.assertEqual(fb[1][:5], (1, 0, 0, 1, 0))
        self.assertEqual(m.v_regs[0xF], 0)
        run(cpu, 1)
        self.assertTrue(all(p == 0 for row in m.get_framebuffer() for p in row))
        self.assertEqual(m.v_regs[0xF], 1)

    def test_start_position_wraps(self):
        cpu, m = make_cpu(0x6041, 0x6122, 0xA050, 0xD011)
        run(cpu, 4)
        fb = m.get_framebuffer()
        self.assertEqual(fb[2][1:5], (1, 1, 1, 1))

    def test_clipping(self):
        cpu, m = make_cpu(0x603E, 0x611E, 0xA050, 0xD015)
        run(cpu, 4)
        fb = m.get_framebuffer()
        self.assertEqual((fb[30][62], fb[30][63], fb[30][0], fb[30][1]), (1, 1, 0, 0))
        self.assertEqual(fb[0][62], 0)
        self.assertEqual(fb[0][1], 0)

    def test_wrapping(self):
        cpu, m = make_cpu(0x603E, 0x611E, 0xA050, 0xD015, quirks=NO_WAIT._replace(clip_sprites=False))
        run(cpu, 4)
        fb = m.get_framebuffer()
        self.assertEqual((fb[30][62], fb[30][63], fb[30][0], fb[30][1]), (1, 1, 1, 1))
        self.assertEqual((fb[0][62], fb[0][63], fb[0][0], fb[0][1]), (1, 0, 0, 1))

    def test_clear_then_draw_equals_draw(self):
        drawing = (0x6003, 0x6104, 0xA05A, 0xD015)
        cpu, m = make_cpu(*drawing)
        run(cpu, 4)
        cpu2, m2 = make_cpu(0x00E0, *drawing)
        m2.screen.flip(10, 10)
        run(cpu2, 5)
        self.assertEqual(m.get_framebuffer(), m2.get_framebuffer())

    def test_display_wait(self):
        cpu, m = make_cpu(0xD005, 0x6101, quirks=Quirks())
        self.assertIs(cpu.execute_one(), StepOutcome.EXECUTED)
        self.assertIs(cpu.execute_one(), StepOutcome.AWAITING_TICK)
        self.assertEqual(m.pc, 0x202)
        tick_timers(m)
        self.assertIs(cpu.execute_one(), StepOutcome.EXECUTED)
        self.assertEqual(m.v_regs[1], 1)


class TestInput(unittest.TestCase):
    def test_skip_if_pressed(self):
        cpu, m = make_cpu(0x6105, 0xE19E)
        m.set_key(5, True)
        run(cpu, 2)
        self.assertEqual(m.pc, 0x206)
        cpu, m = make_cpu(0x6105, 0xE19E)
        run(cpu, 2)
        self.assertEqual(m.pc, 0x204)

    def test_skip_if_not_pressed(self):
        cpu, m = make_cpu(0x6105, 0xE1A1)
        run(cpu, 2)
        self.assertEqual(m.pc, 0x206)
        cpu, m = make_cpu(0x6105, 0xE1A1)
        m.set_key(5, True)
        run(cpu, 2)
        self.assertEqual(m.pc, 0x204)

    def test_wait_for_press_and_release(self):
        cpu, m = make_cpu(0xF30A, 0x6101)
        m.set_key(7, True)      # already held when the wait starts
        self.assertIs(cpu.execute_one(), StepOutcome.AWAITING_KEY)
        self.assertIs(m.wait, WaitState.AWAITING_KEY)
        m.set_key(7, False)
        self.assertIs(cpu.execute_one(), StepOutcome.AWAITING_KEY)
        m.set_key(0xA, True)
        self.assertIs(cpu.execute_one(), StepOutcome.AWAITING_KEY)
        m.set_key(0xA, False)
        self.assertIs(cpu.execute_one(), StepOutcome.EXECUTED)
        self.assertEqual(m.v_regs[3], 0xA)
        self.assertEqual(m.pc, 0x202)
        self.assertIs(cpu.execute_one(), StepOutcome.EXECUTED)
        self.assertEqual(m.v_regs[1], 1)


class TestTimers(unittest.TestCase):
    def test_set_and_read_timers(self):
        cpu, m = make_cpu(0x6140, 0xF115, 0x6203, 0xF218, 0xF307)
        run(cpu, 5)
        self.assertEqual((m.dt, m.st, m.v_regs[3]), (0x40, 3, 0x40))


class TestDecoding(unittest.TestCase):
    def test_unknown_opcodes(self):
        for opcode in (0x0000, 0x0123, 0x5121, 0x800F, 0x9121, 0xE1FF, 0xF1FF):
            cpu, m = make_cpu(0x6000, opcode)
            run(cpu, 1)
            with self.assertRaises(UnknownOpcode) as ctx:
                cpu.execute_one()
            self.assertEqual(ctx.exception.opcode, opcode)
            self.assertEqual(ctx.exception.address, 0x202)
            self.assertEqual(m.pc, 0x202)


if __name__ == "__main__":
    unittest.main()
