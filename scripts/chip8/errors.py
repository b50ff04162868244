class Chip8Error(Exception):
    """base class of every fault the virtual machine can signal"""


class UnknownOpcode(Chip8Error):
    def __init__(self, opcode, address):
        self.opcode = opcode
        self.address = address
        super().__init__(f"Unknown opcode 0x{opcode:04x} at address 0x{address:04x}")


class StackOverflow(Chip8Error):
    def __init__(self, address):
        self.address = address
        super().__init__(f"The CHIP-8 stack can contain at most 16 addresses. Limit exceeded at 0x{address:04x}")


class StackUnderflow(Chip8Error):
    def __init__(self, address):
        self.address = address
        super().__init__(f"Return with an empty stack at 0x{address:04x}")


class ProgramTooLarge(Chip8Error):
    def __init__(self, size, limit):
        self.size = size
        self.limit = limit
        super().__init__(f"The program is {size} bytes long, at most {limit} bytes fit in memory")


class ProtectedMemoryWrite(Chip8Error):
    def __init__(self, address):
        self.address = address
        super().__init__(f"Tried to overwrite the font table at 0x{address:04x}")
