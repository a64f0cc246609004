# CHIP-8 INFO
# https://chip-8.github.io/extensions/#chip-8
# https://chip-8.github.io/links/
#
# COMPATIBILITY QUIRKS TABLE
# https://games.gulrak.net/cadmium/chip8-opcode-table.html#quirk6
#
# MASTERING CHIP-8
# https://github.com/mattmikolay/chip-8/wiki/Mastering-CHIP%E2%80%908
#
# TEST SUITE
# https://github.com/Timendus/chip8-test-suite


import logging
import random
from collections import namedtuple
from enum import Enum
from functools import wraps


logger = logging.getLogger(__name__)


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

FONT_START_ADDRESS = 0x000
FONT_SPRITE_SIZE = 5            # bytes per glyph
MEMORY_SIZE = 4096
ROM_START_ADDRESS = 0x200
REGISTER_COUNT = 16
KEY_COUNT = 16
STACK_SIZE = 16
INSTRUCTION_SIZE = 0x2
SCREEN_HEIGHT = 32
SCREEN_WIDTH = 64

RANDOM_MODULO = "modulo"        # legacy: random 16 bit value % (KK + 1)
RANDOM_AND = "and"              # random byte & KK
RANDOM_MODES = (RANDOM_MODULO, RANDOM_AND)


# ******************** ERRORS SECTION
class Chip8Error(Exception):
    """base class of every error raised by the virtual machine"""


class RomLoadError(Chip8Error):
    """the ROM could not be read or does not fit in memory"""


class MemoryAccessError(Chip8Error, IndexError):
    """an address outside the 4KB memory, or a value that is not a byte"""


class RegisterAccessError(Chip8Error, IndexError):
    """a register index outside V0..VF, or a value that is not a byte"""


# ******************** UTILITIES SECTION
def asm(msg):
    """decorator to log the ASM of the instruction being called"""
    def decorator(fn):
        @wraps(fn)
        def wrapper_fn(*args, **kwargs):
            mem_addr = args[0].pc       # args[0] equals self of the decorated method
            vals = fn(*args, **kwargs)  # use the locals() values of each decorated function in the message
            vals['mem_addr'] = mem_addr
            if logger.isEnabledFor(logging.DEBUG):
                logger.debug(msg.format(**vals))
        return wrapper_fn
    return decorator


# ******************** DECODE SECTION
class ActionId(Enum):
    """the instructions of the base CHIP-8 set, valued by their encoding"""
    UNKNOWN = "????"
    SYS = "0NNN"
    CLS = "00E0"
    RET = "00EE"
    JP = "1NNN"
    CALL = "2NNN"
    SE_VX_KK = "3XKK"
    SNE_VX_KK = "4XKK"
    SE_VX_VY = "5XY0"
    LD_VX_KK = "6XKK"
    ADD_VX_KK = "7XKK"
    LD_VX_VY = "8XY0"
    OR = "8XY1"
    AND = "8XY2"
    XOR = "8XY3"
    ADD = "8XY4"
    SUB = "8XY5"
    SHR = "8XY6"
    SUBN = "8XY7"
    SHL = "8XYE"
    SNE_VX_VY = "9XY0"
    LD_I = "ANNN"
    JP_V0 = "BNNN"
    RND = "CXKK"
    DRW = "DXYN"
    SKP = "EX9E"
    SKNP = "EXA1"
    LD_VX_DT = "FX07"
    LD_VX_K = "FX0A"
    LD_DT_VX = "FX15"
    LD_ST_VX = "FX18"
    ADD_I_VX = "FX1E"
    LD_F_VX = "FX29"
    LD_B_VX = "FX33"
    LD_I_VX = "FX55"
    LD_VX_I = "FX65"


Instruction = namedtuple("Instruction", ["mask", "pattern", "action"])

# WATCH OUT: entries order is important!!!
# resolve() returns the first match, so 0NNN must stay behind 00E0 and 00EE
INSTRUCTION_TABLE = (
    Instruction(0xFFFF, 0x00E0, ActionId.CLS),
    Instruction(0xFFFF, 0x00EE, ActionId.RET),
    Instruction(0xF000, 0x1000, ActionId.JP),
    Instruction(0xF000, 0x2000, ActionId.CALL),
    Instruction(0xF000, 0x3000, ActionId.SE_VX_KK),
    Instruction(0xF000, 0x4000, ActionId.SNE_VX_KK),
    Instruction(0xF00F, 0x5000, ActionId.SE_VX_VY),
    Instruction(0xF000, 0x6000, ActionId.LD_VX_KK),
    Instruction(0xF000, 0x7000, ActionId.ADD_VX_KK),
    Instruction(0xF00F, 0x8000, ActionId.LD_VX_VY),
    Instruction(0xF00F, 0x8001, ActionId.OR),
    Instruction(0xF00F, 0x8002, ActionId.AND),
    Instruction(0xF00F, 0x8003, ActionId.XOR),
    Instruction(0xF00F, 0x8004, ActionId.ADD),
    Instruction(0xF00F, 0x8005, ActionId.SUB),
    Instruction(0xF00F, 0x8006, ActionId.SHR),
    Instruction(0xF00F, 0x8007, ActionId.SUBN),
    Instruction(0xF00F, 0x800E, ActionId.SHL),
    Instruction(0xF00F, 0x9000, ActionId.SNE_VX_VY),
    Instruction(0xF000, 0xA000, ActionId.LD_I),
    Instruction(0xF000, 0xB000, ActionId.JP_V0),
    Instruction(0xF000, 0xC000, ActionId.RND),
    Instruction(0xF000, 0xD000, ActionId.DRW),
    Instruction(0xF0FF, 0xE09E, ActionId.SKP),
    Instruction(0xF0FF, 0xE0A1, ActionId.SKNP),
    Instruction(0xF0FF, 0xF007, ActionId.LD_VX_DT),
    Instruction(0xF0FF, 0xF00A, ActionId.LD_VX_K),
    Instruction(0xF0FF, 0xF015, ActionId.LD_DT_VX),
    Instruction(0xF0FF, 0xF018, ActionId.LD_ST_VX),
    Instruction(0xF0FF, 0xF01E, ActionId.ADD_I_VX),
    Instruction(0xF0FF, 0xF029, ActionId.LD_F_VX),
    Instruction(0xF0FF, 0xF033, ActionId.LD_B_VX),
    Instruction(0xF0FF, 0xF055, ActionId.LD_I_VX),
    Instruction(0xF0FF, 0xF065, ActionId.LD_VX_I),
    Instruction(0xF000, 0x0000, ActionId.SYS),
)


def resolve(opcode):
    """decode an opcode using the masks table and return the matching action id"""
    for mask, pattern, action in INSTRUCTION_TABLE:
        if opcode & mask == pattern:
            return action
    return ActionId.UNKNOWN


# ******************** MEMORY SECTION
class Bank:
    """
    wraps a list of bytes with a fixed size
    out of range indices and values that do not fit in a byte raise instead of wrapping around
    """
    error = IndexError
    name = "cell"

    def __init__(self, size):
        self.inner = [0] * size

    def __len__(self):
        return len(self.inner)

    def __iter__(self):
        return iter(self.inner)

    def __getitem__(self, key):
        if isinstance(key, slice):
            start, stop = self._check_slice(key)
            return self.inner[start:stop]
        self._check_index(key)
        return self.inner[key]

    def __setitem__(self, key, value):
        if isinstance(key, slice):
            start, stop = self._check_slice(key)
            value = list(value)
            if len(value) != stop - start:
                raise self.error(f"cannot store {len(value)} bytes into {stop - start} {self.name}s")
            for v in value:
                self._check_value(v)
            self.inner[start:stop] = value
        else:
            self._check_index(key)
            self._check_value(value)
            self.inner[key] = value

    def _check_index(self, index):
        if not 0 <= index < len(self.inner):
            raise self.error(f"{self.name} 0x{index:x} out of range 0x0-0x{len(self.inner) - 1:x}")

    def _check_slice(self, key):
        if key.step not in (None, 1):
            raise self.error(f"{self.name} slices must be contiguous")
        start = 0 if key.start is None else key.start
        stop = len(self.inner) if key.stop is None else key.stop
        if not 0 <= start <= stop <= len(self.inner):
            raise self.error(f"{self.name}s 0x{start:x}-0x{stop:x} out of range 0x0-0x{len(self.inner) - 1:x}")
        return start, stop

    def _check_value(self, value):
        if not 0 <= value <= 0xFF:
            raise self.error(f"value {value} does not fit in a byte")


# ********** THE MAIN MEMORY WITH A LIMITED SIZE OF 4KB, FONTS ARE LOADED AT THE BOTTOM
class Memory(Bank):
    error = MemoryAccessError
    name = "address"

    def __init__(self, size=MEMORY_SIZE):
        super().__init__(size)
        self.inner[FONT_START_ADDRESS:FONT_START_ADDRESS+len(C8_FONTS)] = C8_FONTS

    def load_bytes(self, rom):
        """copy a ROM image into memory starting at ROM_START_ADDRESS"""
        rom = bytes(rom)
        room = len(self.inner) - ROM_START_ADDRESS
        if len(rom) > room:
            raise RomLoadError(f"the ROM is {len(rom)} bytes long, at most {room} bytes fit in memory")
        self.inner[ROM_START_ADDRESS:ROM_START_ADDRESS+len(rom)] = rom
        return len(rom)

    def load_rom(self, path):
        """load ROM file from user specified path, raise RomLoadError if it can't be read"""
        try:
            with open(path, mode='rb') as f:
                rom = f.read()
        except OSError as e:
            raise RomLoadError(f"cannot read the ROM at path {path}: {e}") from e
        size = self.load_bytes(rom)
        logger.info("The ROM at path %s has been loaded successfully (%d bytes)", path, size)
        return size


# ********** THE 16 VARIABLE REGISTERS V0..VF
class Registers(Bank):
    error = RegisterAccessError
    name = "register"

    def __init__(self, size=REGISTER_COUNT):
        super().__init__(size)


# ********** WRAPS A LIST TO REPRESENT A STACK WITH A LIMITED SIZE OF 16 ADDRESSES
class Stack:
    def __init__(self, capacity=STACK_SIZE):
        self.addr_list = []
        self.capacity = capacity

    def __len__(self):
        return len(self.addr_list)

    def __str__(self):
        return "[" + ", ".join(f"0x{addr:04x}" for addr in self.addr_list) + "]"

    def push(self, address):
        """push an address, return False without pushing when the stack is already full"""
        if len(self.addr_list) >= self.capacity:
            return False
        self.addr_list.append(address)
        return True

    def pop(self):
        """pop the last address, None when the stack is empty"""
        if not self.addr_list:
            return None
        return self.addr_list.pop()


# ******************** DISPLAY SECTION
class Framebuffer:
    """a W*H grid of pixels, each either ON (1) or OFF (0)"""

    def __init__(self, w=SCREEN_WIDTH, h=SCREEN_HEIGHT):
        self.w, self.h = w, h
        self.buffer = [0] * h * w

    def __str__(self):
        return "\n".join("".join("#" if p else "." for p in row) for row in self.rows())

    def get_pixel(self, x, y):
        """return 1 if pixel is ON, return 0 if pixel is OFF"""
        if not (0 <= x < self.w and 0 <= y < self.h):
            raise IndexError(f"pixel ({x}, {y}) is outside the {self.w}x{self.h} screen")
        return self.buffer[y * self.w + x]

    def rows(self):
        """read-only copy of the whole grid, one tuple per row"""
        return tuple(tuple(self.buffer[r * self.w:(r + 1) * self.w]) for r in range(self.h))

    def clear(self):
        self.buffer = [0] * self.h * self.w

    def draw_sprite(self, x, y, sprite):
        """
        XOR a sprite onto the screen, one byte per row with the most significant bit on the left
        coordinates wrap around the screen edges, return True if any pixel got erased
        """
        collided = False
        for i, sprite_byte in enumerate(sprite):
            y_coordinate = (y + i) % self.h
            for j in range(8):
                if not (sprite_byte >> (7 - j)) & 0x1:
                    continue
                x_coordinate = (x + j) % self.w
                offset = y_coordinate * self.w + x_coordinate
                # the only case when a pixel gets erased is when it was ON and is turned ON again
                if self.buffer[offset]:
                    collided = True
                self.buffer[offset] ^= 1
        return collided


# ******************** CPU SECTION
class Chip8:
    def __init__(self, framebuffer=None, random_mode=RANDOM_MODULO, rng=None):
        if random_mode not in RANDOM_MODES:
            raise ValueError(f"unknown random mode {random_mode!r}, expected one of {RANDOM_MODES}")
        self.mem = Memory()
        self.stack = Stack()
        self.v_regs = Registers()
        self.pc = ROM_START_ADDRESS
        self.idx = 0    # specify where the sprites reside in memory
        self.dt = 0     # delay timer, active when non-zero
        self.st = 0     # sound timer, active when non-zero
        self.keys = [False] * KEY_COUNT
        self.awaiting_key = None    # register waiting for a key press, execution is suspended meanwhile
        self.framebuffer = framebuffer if framebuffer is not None else Framebuffer()
        self.random_mode = random_mode
        self.rng = rng if rng is not None else random.Random()
        self.instructions = {
            ActionId.UNKNOWN: self._unknown,
            ActionId.SYS: self._sys,
            ActionId.CLS: self._clear_screen,
            ActionId.RET: self._return,
            ActionId.JP: self._jump,
            ActionId.CALL: self._call_addr,
            ActionId.SE_VX_KK: self._skip_if_eq,
            ActionId.SNE_VX_KK: self._skip_if_not_eq,
            ActionId.SE_VX_VY: self._skip_if_eq_regs,
            ActionId.LD_VX_KK: self._set_vk,
            ActionId.ADD_VX_KK: self._add_to_vk,
            ActionId.LD_VX_VY: self._set_vx_to_vy,
            ActionId.OR: self._set_vx_or_vy,
            ActionId.AND: self._set_vx_and_vy,
            ActionId.XOR: self._set_vx_xor_vy,
            ActionId.ADD: self._add_vx_vy,
            ActionId.SUB: self._sub_vx_vy,
            ActionId.SHR: self._shr,
            ActionId.SUBN: self._subn_vx_vy,
            ActionId.SHL: self._shl,
            ActionId.SNE_VX_VY: self._skip_if_not_eq_regs,
            ActionId.LD_I: self._set_idx,
            ActionId.JP_V0: self._jump_plus,
            ActionId.RND: self._random_byte_and,
            ActionId.DRW: self._to_screen,
            ActionId.SKP: self._skip_if_pressed,
            ActionId.SKNP: self._skip_if_not_pressed,
            ActionId.LD_VX_DT: self._set_vx_dt,
            ActionId.LD_VX_K: self._wait_keypress,
            ActionId.LD_DT_VX: self._set_dt_vx,
            ActionId.LD_ST_VX: self._set_st,
            ActionId.ADD_I_VX: self._add_to_idx,
            ActionId.LD_F_VX: self._select_char,
            ActionId.LD_B_VX: self._bcd_repr,
            ActionId.LD_I_VX: self._store_vregs,
            ActionId.LD_VX_I: self._load_vregs,
        }

    def __str__(self):
        registers = f"PC_REGISTER:0x{self.pc:04x} | IDX_REGISTER:0x{self.idx:04x} | VARIABLE_REGISTERS:{list(self.v_regs)}"
        timers = f"DELAY_TIMER:{self.dt} | SOUND_TIMER:{self.st}"
        stack = f"STACK:{self.stack}"
        keys = f"KEYS:{[k for k, pressed in enumerate(self.keys) if pressed]} | AWAITING_KEY:{self.awaiting_key}"
        return f"{registers}\n{timers}\n{stack}\n{keys}\n{self.framebuffer}"

    # ********** KEYPAD
    def press_key(self, key):
        """register a key press, completing a pending LD Vx, K if there is one"""
        self._check_key(key)
        self.keys[key] = True
        if self.awaiting_key is not None:
            logger.debug("Storing the key %d in V%d, execution resumes", key, self.awaiting_key)
            self.v_regs[self.awaiting_key] = key
            self.awaiting_key = None

    def release_key(self, key):
        self._check_key(key)
        self.keys[key] = False

    def update_keys(self, transitions=()):
        """apply (key, is_down) transitions in the order they happened"""
        for key, is_down in transitions:
            if is_down:
                self.press_key(key)
            else:
                self.release_key(key)

    @staticmethod
    def _check_key(key):
        if not 0 <= key < KEY_COUNT:
            raise ValueError(f"key {key} is not one of the 16 CHIP-8 keys")

    # ********** TIMERS
    def tick_timers(self):
        """decrement delay and sound timers, never below zero"""
        if self.dt > 0:
            self.dt -= 1
        if self.st > 0:
            self.st -= 1

    # ********** INSTRUCTIONS
    @asm("mem_addr: 0x{mem_addr:04x}    instruction: ??? 0x{opcode:04x}")
    def _unknown(self, opcode):
        logger.error("Unimplemented / Invalid opcode 0x%04x at 0x%04x, skipping it", opcode, self.pc)
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: SYS 0x{address:04x}")
    def _sys(self, opcode):
        """jump to a machine code routine, ignored since there is no host machine code to run"""
        address = opcode & 0x0FFF
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: SKP V{x}")
    def _skip_if_pressed(self, opcode):
        """skip the following instruction if the key corresponding to the hex value stored in Vx is pressed"""
        x = (opcode & 0x0F00) >> 8
        key = self.v_regs[x] & 0xF
        if self.keys[key]:
            self._goto_next_instruction()
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: SKNP V{x}")
    def _skip_if_not_pressed(self, opcode):
        """skip the following instruction if the key corresponding to the hex value stored in Vx is NOT pressed"""
        x = (opcode & 0x0F00) >> 8
        key = self.v_regs[x] & 0xF
        if not self.keys[key]:
            self._goto_next_instruction()
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: LD V{x}, K")
    def _wait_keypress(self, opcode):
        """wait for a key press and store its value in Vx"""
        x = (opcode & 0x0F00) >> 8
        self.awaiting_key = x       # cycle() stays idle until press_key() is called
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: LD V{x}, DT")
    def _set_vx_dt(self, opcode):
        """set Vx = DT (delay timer) value"""
        x = (opcode & 0x0F00) >> 8
        self.v_regs[x] = self.dt
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: LD DT, V{x}")
    def _set_dt_vx(self, opcode):
        """set DT (delay timer) = Vx"""
        x = (opcode & 0x0F00) >> 8
        self.dt = self.v_regs[x]
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: CLS")
    def _clear_screen(self, opcode):
        self.framebuffer.clear()
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: RET")
    def _return(self, opcode):
        """return from a subroutine"""
        address = self.stack.pop()
        if address is None:
            logger.warning("RET at 0x%04x with an empty stack, ignoring it", self.pc)
        else:
            self.pc = address
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: JP 0x{address:04x}")
    def _jump(self, opcode):
        address = opcode & 0x0FFF
        self.pc = address - INSTRUCTION_SIZE
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: CALL 0x{address:04x}")
    def _call_addr(self, opcode):
        address = opcode & 0x0FFF
        if not self.stack.push(self.pc):
            logger.warning("CALL at 0x%04x with a full stack, the return address is dropped", self.pc)
        self.pc = address - INSTRUCTION_SIZE
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: SE V{x}, {comparison_value}")
    def _skip_if_eq(self, opcode):
        x = (opcode & 0x0F00) >> 8
        comparison_value = opcode & 0x00FF
        if self.v_regs[x] == comparison_value:
            self._goto_next_instruction()
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: SNE V{x}, {comparison_value}")
    def _skip_if_not_eq(self, opcode):
        x = (opcode & 0x0F00) >> 8
        comparison_value = opcode & 0x00FF
        if self.v_regs[x] != comparison_value:
            self._goto_next_instruction()
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: SE V{x}, V{y}")
    def _skip_if_eq_regs(self, opcode):
        x, y = (opcode & 0x0F00) >> 8, (opcode & 0x00F0) >> 4
        if self.v_regs[x] == self.v_regs[y]:
            self._goto_next_instruction()
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: SNE V{x}, V{y}")
    def _skip_if_not_eq_regs(self, opcode):
        x, y = (opcode & 0x0F00) >> 8, (opcode & 0x00F0) >> 4
        if self.v_regs[x] != self.v_regs[y]:
            self._goto_next_instruction()
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: LD V{x}, {value}")
    def _set_vk(self, opcode):
        """set the value of one of the 16 variable registers, Vx"""
        x, value = (opcode & 0x0F00) >> 8, opcode & 0x00FF
        self.v_regs[x] = value
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: ADD V{x}, {value}")
    def _add_to_vk(self, opcode):
        """add to the value already present in one of the variable registers, VF is untouched"""
        x, value = (opcode & 0x0F00) >> 8, opcode & 0x00FF
        self.v_regs[x] = (self.v_regs[x] + value) & 0xFF    # keep only the lowest 8 bits from the result and store them in Vx
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: LD V{x}, V{y}")
    def _set_vx_to_vy(self, opcode):
        """set the value of Vx equal to that of Vy"""
        x, y = (opcode & 0x0F00) >> 8, (opcode & 0x00F0) >> 4
        self.v_regs[x] = self.v_regs[y]
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: OR V{x}, V{y}")
    def _set_vx_or_vy(self, opcode):
        """set the value of Vx to Vx OR Vy"""
        x, y = (opcode & 0x0F00) >> 8, (opcode & 0x00F0) >> 4
        self.v_regs[x] = self.v_regs[x] | self.v_regs[y]
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: AND V{x}, V{y}")
    def _set_vx_and_vy(self, opcode):
        """set the value of Vx to Vx AND Vy"""
        x, y = (opcode & 0x0F00) >> 8, (opcode & 0x00F0) >> 4
        self.v_regs[x] = self.v_regs[x] & self.v_regs[y]
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: XOR V{x}, V{y}")
    def _set_vx_xor_vy(self, opcode):
        """set the value of Vx to Vx XOR Vy"""
        x, y = (opcode & 0x0F00) >> 8, (opcode & 0x00F0) >> 4
        self.v_regs[x] = self.v_regs[x] ^ self.v_regs[y]
        return locals()

    # the flag goes into VF before Vx is written, so with x == 0xF the result wins
    @asm("mem_addr: 0x{mem_addr:04x}    instruction: ADD V{x}, V{y}")
    def _add_vx_vy(self, opcode):
        """set the value of Vx to Vx + Vy, VF = carry"""
        x, y = (opcode & 0x0F00) >> 8, (opcode & 0x00F0) >> 4
        sum = self.v_regs[x] + self.v_regs[y]
        self.v_regs[0xF] = 1 if sum > 0xFF else 0
        self.v_regs[x] = sum & 0xFF     # keep only the lowest 8 bits from the result and store them in Vx
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: SUB V{x}, V{y}")
    def _sub_vx_vy(self, opcode):
        """set the value of Vx to Vx - Vy, VF = NOT borrow"""
        x, y = (opcode & 0x0F00) >> 8, (opcode & 0x00F0) >> 4
        vx, vy = self.v_regs[x], self.v_regs[y]
        self.v_regs[0xF] = 1 if vx >= vy else 0
        self.v_regs[x] = (vx - vy) & 0xFF
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: SHR V{x}")
    def _shr(self, opcode):
        """set Vx equal to Vx SHR 1, VF = the bit shifted out"""
        x = (opcode & 0x0F00) >> 8
        vx = self.v_regs[x]
        self.v_regs[0xF] = vx & 0x1
        self.v_regs[x] = vx >> 1
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: SUBN V{x}, V{y}")
    def _subn_vx_vy(self, opcode):
        """set the value of Vx to Vy - Vx, VF = NOT borrow"""
        x, y = (opcode & 0x0F00) >> 8, (opcode & 0x00F0) >> 4
        vx, vy = self.v_regs[x], self.v_regs[y]
        self.v_regs[0xF] = 1 if vy >= vx else 0
        self.v_regs[x] = (vy - vx) & 0xFF
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: SHL V{x}")
    def _shl(self, opcode):
        """set Vx equal to Vx SHL 1, VF = the bit shifted out"""
        x = (opcode & 0x0F00) >> 8
        vx = self.v_regs[x]
        self.v_regs[0xF] = (vx & 0x80) >> 7
        self.v_regs[x] = (vx << 1) & 0xFF   # multiply by 2 and keep only the lowest 8 bits from the result
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: LD I, 0x{value:04x}")
    def _set_idx(self, opcode):
        """set the value of the I register"""
        value = opcode & 0x0FFF
        self.idx = value
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: JP V0, 0x{address:04x}")
    def _jump_plus(self, opcode):
        address = opcode & 0x0FFF
        v0 = self.v_regs[0x0]
        self.pc = address + v0 - INSTRUCTION_SIZE
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: RND V{x}, 0x{kk:02x}")
    def _random_byte_and(self, opcode):
        x, kk = (opcode & 0x0F00) >> 8, opcode & 0x00FF
        if self.random_mode == RANDOM_MODULO:
            rnd = self.rng.randint(0, 0xFFFF)
            self.v_regs[x] = rnd % (kk + 1)
        else:
            rnd = self.rng.randint(0, 0xFF)
            self.v_regs[x] = rnd & kk
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: LD ST, V{register}")
    def _set_st(self, opcode):
        """set ST = Vx"""
        register = (opcode & 0x0F00) >> 8
        self.st = self.v_regs[register]
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: ADD I, V{register}")
    def _add_to_idx(self, opcode):
        """set I = I + Vx, VF = 1 when the result leaves the 12 bit address space"""
        register = (opcode & 0x0F00) >> 8
        total = self.idx + self.v_regs[register]
        self.v_regs[0xF] = 1 if total > 0xFFF else 0
        self.idx = total & 0xFFFF
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: LD F, V{register}")
    def _select_char(self, opcode):
        """set I to location of sprite for digit Vx"""
        register = (opcode & 0x0F00) >> 8
        self.idx = FONT_START_ADDRESS + self.v_regs[register] * FONT_SPRITE_SIZE
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: LD B, V{x}")
    def _bcd_repr(self, opcode):
        """takes the decimal value of Vx and the hundreds digit in memory at I, the tens digit at I+1, the ones digit at I+2"""
        x = (opcode & 0x0F00) >> 8
        value = self.v_regs[x]
        hundreds, tens, ones = value // 100, (value // 10) % 10, value % 10
        self.mem[self.idx:self.idx+3] = [hundreds, tens, ones]
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: LD [I], V{x}")
    def _store_vregs(self, opcode):
        """store registers V0 through Vx (included) in memory starting at location I, I is unchanged"""
        x = (opcode & 0x0F00) >> 8
        self.mem[self.idx:self.idx+x+1] = self.v_regs[:x+1]
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: LD V{x}, [I]")
    def _load_vregs(self, opcode):
        """read registers V0 through Vx (included) from memory starting at location I, I is unchanged"""
        x = (opcode & 0x0F00) >> 8
        self.v_regs[:x+1] = self.mem[self.idx:self.idx+x+1]
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: DRW V{x}, V{y}, {n_bytes}")
    def _to_screen(self, opcode):
        """display n-byte sprite starting at memory location I at (Vx, Vy), set VF = collision"""
        x, y = (opcode & 0x0F00) >> 8, (opcode & 0x00F0) >> 4
        n_bytes = opcode & 0x000F
        sprite = self.mem[self.idx:self.idx+n_bytes]
        collided = self.framebuffer.draw_sprite(self.v_regs[x], self.v_regs[y], sprite)
        self.v_regs[0xF] = 1 if collided else 0
        return locals()

    def _goto_next_instruction(self):
        self.pc += INSTRUCTION_SIZE

    def fetch(self):
        """each instruction is two bytes long, most significant byte first"""
        return self.mem[self.pc] << 8 | self.mem[self.pc + 1]

    def step(self, opcode, action):
        """execute an already decoded opcode, then move on to the next instruction"""
        self.instructions[action](opcode)
        self._goto_next_instruction()

    def cycle(self):
        """emulate one machine cycle (fetch, decode, execute), idle while waiting for a key press"""
        if self.awaiting_key is not None:
            return
        opcode = self.fetch()
        self.step(opcode, resolve(opcode))
