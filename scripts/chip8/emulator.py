import argparse
import logging
import sys

import os
os.environ["PYGAME_HIDE_SUPPORT_PROMPT"] = "no welcome message"   # this env var disable pygame's welcome message when imported
import pygame
from pygame.locals import (
    K_0, K_1, K_2, K_3,
    K_4, K_5, K_6, K_7,
    K_8, K_9, K_a, K_b,
    K_c, K_d, K_e, K_f,
)

from chip8 import (
    Chip8,
    Chip8Error,
    RomLoadError,
    RANDOM_MODES,
    RANDOM_MODULO,
    SCREEN_HEIGHT,
    SCREEN_WIDTH,
)


logger = logging.getLogger(__name__)


# ******************** STATIC SECTION
KEY_MAPPINGS = {
    K_0: 0x0,
    K_1: 0x1,
    K_2: 0x2,
    K_3: 0x3,
    K_4: 0x4,
    K_5: 0x5,
    K_6: 0x6,
    K_7: 0x7,
    K_8: 0x8,
    K_9: 0x9,
    K_a: 0xA,
    K_b: 0xB,
    K_c: 0xC,
    K_d: 0xD,
    K_e: 0xE,
    K_f: 0xF,
}

DEBUG = True if int(os.getenv('DEBUG', 0)) >= 1 else False
CYCLES_PER_FRAME = 10           # instructions executed between two timer ticks
FPS = 60
SCALE = 15
BLUE = pygame.Color(80,69,155,255)
LIGHT_BLUE = pygame.Color(136,126,203,255)


# ******************** UTILITIES SECTION
def get_args(argv=None):
    parser = argparse.ArgumentParser(description="run a CHIP-8 ROM")
    parser.add_argument("-f", "--file", required=True, help="input rom file")
    parser.add_argument("-c", "--cycles", type=int, default=CYCLES_PER_FRAME,
                        help=f"instructions executed per frame (default: {CYCLES_PER_FRAME})")
    parser.add_argument("--fps", type=int, default=FPS, help=f"frames per second (default: {FPS})")
    parser.add_argument("-s", "--scale", type=int, default=SCALE,
                        help=f"size in pixels of a CHIP-8 pixel (default: {SCALE})")
    parser.add_argument("-r", "--random-mode", choices=RANDOM_MODES, default=RANDOM_MODULO,
                        help="how RND reduces the random value: modulo KK+1 (legacy) or AND KK")
    args = parser.parse_args(argv)
    if args.cycles < 1 or args.fps < 1 or args.scale < 1:
        parser.error("--cycles, --fps and --scale must be positive")
    return args


# ******************** I/O SECTION
class Screen:
    """render sink, blows up every CHIP-8 pixel into a scale*scale square"""

    def __init__(self, w=SCREEN_WIDTH, h=SCREEN_HEIGHT, s=SCALE, bg_color=BLUE, fg_color=LIGHT_BLUE):
        self.w, self.h, self.scale = w, h, s
        self.background = bg_color
        self.foreground = fg_color
        self.surface = pygame.display.set_mode(
            (w * self.scale, h * self.scale),
        )
        self.surface.fill(self.background)

    def render(self, framebuffer):
        self.surface.fill(self.background)
        for y, row in enumerate(framebuffer.rows()):
            for x, pixel in enumerate(row):
                if pixel:
                    pygame.draw.rect(
                        self.surface,
                        self.foreground,
                        (x * self.scale, y * self.scale, self.scale, self.scale)
                    )
        pygame.display.flip()


class Keyboard:
    """input source, translates the pygame event queue into CHIP-8 key presses and releases"""

    def __init__(self, mappings=None, get_events=None):
        self.mappings = KEY_MAPPINGS if mappings is None else mappings
        self.get_events = pygame.event.get if get_events is None else get_events

    def poll(self):
        """return the (key, is_down) transitions in event order and whether an exit was requested"""
        transitions, exit_requested = [], False
        # loop throught the event queue
        for event in self.get_events():
            if event.type == pygame.QUIT:
                exit_requested = True
            elif event.type == pygame.KEYDOWN:
                if event.key == pygame.K_ESCAPE:
                    exit_requested = True
                elif event.key in self.mappings:
                    transitions.append((self.mappings[event.key], True))
            elif event.type == pygame.KEYUP and event.key in self.mappings:
                transitions.append((self.mappings[event.key], False))
        return transitions, exit_requested


# ******************** TIMING SECTION
class FrameDriver:
    """
    runs the machine one frame at a time:
    many instructions, then a single timer tick, then the framebuffer goes to the render sink
    """

    def __init__(self, chip, render, poll_input, cycles_per_frame=CYCLES_PER_FRAME, clock=None, fps=FPS):
        self.chip = chip
        self.render = render
        self.poll_input = poll_input
        self.cycles_per_frame = cycles_per_frame
        self.clock = clock
        self.fps = fps
        self.frames = 0

    def frame(self):
        """emulate one frame, return True if the exit signal was raised while polling the input"""
        transitions, exit_requested = self.poll_input()
        self.chip.update_keys(transitions)
        for _ in range(self.cycles_per_frame):
            self.chip.cycle()
        self.chip.tick_timers()
        self.render(self.chip.framebuffer)
        if self.clock is not None:
            self.clock.tick(self.fps)
        self.frames += 1
        return exit_requested

    def run(self):
        run = True
        while run:
            run = not self.frame()
        logger.info("Emulation stopped after %d frames", self.frames)


# ******************** ENTRY POINT SECTION
def main(argv=None):
    logging.basicConfig(
        level=logging.DEBUG if DEBUG else logging.WARNING,
        format="[%(levelname)s] %(name)s: %(message)s",
        stream=sys.stdout,
    )
    args = get_args(argv)
    # CPU
    chip = Chip8(random_mode=args.random_mode)
    try:
        chip.mem.load_rom(args.file)
    except RomLoadError as e:
        sys.exit(f"********** THE ROM COULD NOT BE LOADED\n{e}")
    # pygame initialization
    pygame.init()
    try:
        pygame.display.set_caption(os.path.basename(args.file))
        # IO
        screen = Screen(s=args.scale)
        keyboard = Keyboard()
        driver = FrameDriver(chip, screen.render, keyboard.poll, args.cycles, pygame.time.Clock(), args.fps)
        # emulation loop
        try:
            driver.run()
        except Chip8Error as e:
            sys.exit(f"********** THE EMULATOR CRASHED WITH THE FOLLOWING STATE\n{e}\n{chip}")
    finally:
        pygame.quit()


if __name__ == "__main__":
    main()
