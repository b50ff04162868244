import argparse
import array
import os
import random
import sys

os.environ["PYGAME_HIDE_SUPPORT_PROMPT"] = "no welcome message"   # this env var disable pygame's welcome message when imported
import pygame
from pygame.locals import (
    K_1, K_2, K_3, K_4,
    K_q, K_w, K_e, K_r,
    K_a, K_s, K_d, K_f,
    K_z, K_x, K_c, K_v,
    K_ESCAPE, KEYDOWN, KEYUP, QUIT,
)

from . import machine as mc
from .errors import Chip8Error
from .quirks import PRESETS, Quirks
from .stepper import DEFAULT_IPT, Stepper
from .timers import TIMER_HZ


# ******************** STATIC SECTION
# left side of a QWERTY keyboard laid out like the COSMAC VIP hex keypad
# 1 2 3 C
# 4 5 6 D
# 7 8 9 E
# A 0 B F
KEY_MAPPINGS = {
    K_1: 0x1, K_2: 0x2, K_3: 0x3, K_4: 0xC,
    K_q: 0x4, K_w: 0x5, K_e: 0x6, K_r: 0xD,
    K_a: 0x7, K_s: 0x8, K_d: 0x9, K_f: 0xE,
    K_z: 0xA, K_x: 0x0, K_c: 0xB, K_v: 0xF,
}

SCALE = 15
BLUE = pygame.Color(80,69,155,255)
LIGHT_BLUE = pygame.Color(136,126,203,255)
BEEP_FREQUENCY = 440
BEEP_VOLUME = 0.2


# ******************** UTILITIES SECTION
def get_args(argv=None):
    parser = argparse.ArgumentParser(prog="chip8", description="CHIP-8 virtual machine")
    parser.add_argument("-f", "--file", required=True, help="input rom file")
    parser.add_argument("-p", "--preset", choices=list(PRESETS), default="chip8",
                        help="compatibility quirks to run the rom with")
    parser.add_argument("--ipf", type=int, default=DEFAULT_IPT,
                        help=f"instructions executed for each of the {TIMER_HZ} frames per second")
    parser.add_argument("-s", "--scale", type=int, default=SCALE, help="size in pixels of a CHIP-8 pixel")
    parser.add_argument("--seed", type=int, help="seed the random generator for reproducible runs")
    args = parser.parse_args(argv)
    if args.ipf < 1:
        parser.error("--ipf must be at least 1")
    if args.scale < 1:
        parser.error("--scale must be at least 1")
    return args

def load_rom(path):
    """read the ROM file at path, the machine will refuse it if it does not fit in memory"""
    with open(path, mode='rb') as f:
        rom = f.read()
    if mc.DEBUG: print(f"The ROM at path {path} has been loaded successfully ({len(rom)} bytes)")
    return rom


# ******************** I/O SECTION
class Screen:
    def __init__(self, w=mc.SCREEN_WIDTH, h=mc.SCREEN_HEIGHT, s=SCALE, bg_color=BLUE, fg_color=LIGHT_BLUE):
        self.w, self.h, self.scale = w, h, s
        self.background = bg_color
        self.foreground = fg_color
        self.surface = pygame.display.set_mode(
            (w * self.scale, h * self.scale),
        )
        self.surface.fill(self.background)

    def render(self, rows):
        """paint the framebuffer rows on the window and show them"""
        self.surface.fill(self.background)
        for y, row in enumerate(rows):
            for x, pixel in enumerate(row):
                if pixel:
                    pygame.draw.rect(
                        self.surface,
                        self.foreground,
                        (x * self.scale, y * self.scale, self.scale, self.scale)
                    )
        pygame.display.flip()


class Beeper:
    """square wave tone played for as long as the sound timer is active"""
    def __init__(self, frequency=BEEP_FREQUENCY, volume=BEEP_VOLUME):
        self.sound = None
        self.playing = False
        try:
            pygame.mixer.init(size=-16, channels=1)
        except pygame.error as err:
            # no audio device, keep emulating without sound
            if mc.DEBUG: print(f"Audio disabled: {err}")
            return
        sample_rate, _, channels = pygame.mixer.get_init()
        period = sample_rate // frequency
        amplitude = int(32767 * volume)
        samples = array.array('h')
        for i in range(period):
            sample = amplitude if i < period // 2 else -amplitude
            samples.extend([sample] * channels)    # the mixer may have opened with more channels than requested
        self.sound = pygame.mixer.Sound(buffer=samples)

    def update(self, active):
        if self.sound is None:
            return
        if active and not self.playing:
            self.sound.play(loops=-1)
        elif not active and self.playing:
            self.sound.stop()
        self.playing = active


# ******************** ENTRY POINT SECTION
def main(argv=None):
    args = get_args(argv)
    rng = random.Random(args.seed) if args.seed is not None else None
    try:
        rom = load_rom(args.file)
        chip = Stepper.from_rom(rom, Quirks.preset(args.preset), rng, args.ipf)
    except (OSError, Chip8Error) as err:
        sys.exit(f"Cannot run {args.file}: {err}")
    # pygame initialization
    pygame.init()
    try:
        clock = pygame.time.Clock()
        pygame.display.set_caption(os.path.basename(args.file))
        # IO
        s = Screen(s=args.scale)
        beeper = Beeper()
        # emulation loop
        run = True
        while run:
            # one frame per timer tick
            clock.tick(TIMER_HZ)
            # process user input
            # loop throught the event queue
            for event in pygame.event.get():
                if event.type == QUIT:
                    run = False
                elif event.type in (KEYDOWN, KEYUP):
                    if event.key == K_ESCAPE:
                        run = False
                    elif event.key in KEY_MAPPINGS:
                        chip.set_key(KEY_MAPPINGS[event.key], event.type == KEYDOWN)
            try:
                chip.frame()    # emulate instructions_per_tick machine cycles, then tick delay/sound timers
            except Chip8Error as err:
                sys.exit(f"********** THE EMULATOR CRASHED WITH THE FOLLOWING STATE\n{err}\n{chip}")
            # refresh screen if needed
            if chip.draw:
                s.render(chip.get_framebuffer())
                chip.consume_draw()
            beeper.update(chip.get_sound_active())
    finally:
        pygame.quit()
