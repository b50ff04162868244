# COMPATIBILITY QUIRKS TABLE
# https://games.gulrak.net/cadmium/chip8-opcode-table.html#quirk6
#
# QUIRKS TEST ROM
# https://github.com/Timendus/chip8-test-suite#quirks-test

from typing import NamedTuple


class Quirks(NamedTuple):
    """
    compatibility switches selecting among the historically divergent opcode behaviours
    the defaults reproduce the original COSMAC VIP interpreter
    """
    vf_reset: bool = True                   # 8XY1/8XY2/8XY3 reset VF to 0
    shift_uses_vy: bool = False             # 8XY6/8XYE shift VX in place instead of shifting VY into VX
    jump_uses_vx: bool = False              # BNNN jumps to XNN + VX instead of NNN + V0
    clip_sprites: bool = True               # DXYN drops pixels past the screen edge instead of wrapping them
    load_store_increments_i: bool = True    # FX55/FX65 leave I pointing past the last register
    display_wait: bool = True               # DXYN stalls until the next timer tick
    index_overflow_flag: bool = False       # FX1E sets VF when I overflows 0xFFF

    @classmethod
    def preset(cls, name):
        try:
            return PRESETS[name]
        except KeyError:
            raise ValueError(f"Unknown quirks preset '{name}', choose one of: {', '.join(PRESETS)}") from None


CHIP8 = Quirks()
SCHIP = Quirks(
    vf_reset=False,
    shift_uses_vy=True,
    jump_uses_vx=True,
    clip_sprites=True,
    load_store_increments_i=False,
    display_wait=False,
)

PRESETS = {
    "chip8": CHIP8,
    "schip": SCHIP,
}
