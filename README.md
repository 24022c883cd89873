# xv6kit

`xv6kit` models the layers of a small Unix-like teaching kernel in plain
Python: its on-disk file system format, a buffer cache and write-ahead log,
inodes, directories and path lookup, open files and pipes, a process table
with a multi-level feedback scheduler, console line editing, keyboard scan
code decoding, MultiProcessor table parsing, and a few user programs.

It is useful for building and inspecting disk images in that format, and
for following how the layers fit together without booting anything.

## Installation

```
pip install .
```

To run the test suite:

```
pip install ".[test]"
pytest
```

## Command-line tools

### xv6-mkfs

Build a file system image holding the given host files in its root
directory. `--size` (image size in blocks) and `--nlog` (number of log
blocks) are required; `--ninodes` defaults to 200. A leading `_` in a file
name is dropped inside the image, and names may not contain `/`.

```
xv6-mkfs fs.img README _cat _ls --size 1000 --nlog 30
```

It prints the layout it chose and where the bitmap block was written, and
exits with status 1 if a file cannot be read or the image cannot hold what
was asked.

### xv6-grep

Print the lines that match a pattern. The matcher understands only `^`,
`.`, `*` and `$`. With no files it reads standard input.

```
xv6-grep 'ab*c$' notes.txt
```

### xv6-tools

`echo`, `cat` and `ls` as subcommands; `cat` and `ls` read from an image:

```
xv6-tools echo hello world
xv6-tools cat fs.img README
xv6-tools ls fs.img
```

`cat` with no paths copies standard input; `ls` with no paths lists the
root directory. Each `ls` line is `name type inode size`, with the name
padded to 14 characters.

## Library overview

| Module | What it holds |
| --- | --- |
| `xv6kit.layout` | `Superblock`, `DiskInode`, `Dirent`, `InodeType`, `iblock`, `bblock`, `namecmp` |
| `xv6kit.mkfs` | `ImageBuilder` and `build_image` for writing new images |
| `xv6kit.disk` | `MemoryDisk`, a disk kept in a byte buffer |
| `xv6kit.bufcache` | `Buf`, `BufFlag` and the LRU `BufferCache` |
| `xv6kit.log` | `Log`, with `begin_op` / `end_op`, `write` and a `transaction()` context manager |
| `xv6kit.fs` | `FileSystem`, `Inode`, `Stat` and `skipelem` |
| `xv6kit.file` | `FileTable`, `File` and `FileType` |
| `xv6kit.pipe` | `Pipe` and `pipe_alloc` |
| `xv6kit.console` | `ConsoleInput`, the line-editing console buffer |
| `xv6kit.keyboard` | `KeyboardDecoder`, turning PC scan codes into characters |
| `xv6kit.printf` | `format_printf` and `format_cprintf` |
| `xv6kit.mp` | `find_mp`, `parse_config`, `MPFloating`, `MachineConfig` |
| `xv6kit.proc` | `ProcessTable`, `Proc`, `ProcState` |
| `xv6kit.grep` | `match` and `grep` |
| `xv6kit.tools` | `cat`, `ls`, `fmtname`, `echo` |

### Matching lines

```python
from xv6kit.grep import match

match("^ab*c", "abbbc and more")   # True
match("x$", "box")                 # True
match("^y", "xy")                  # False
```

### Formatting like the kernel

```python
from xv6kit.printf import format_printf, format_cprintf

format_printf("%s has %d blocks at %x\n", "fs.img", 1000, 255)
format_cprintf("%x\n", 255)
```

`format_printf` uses upper-case hex and supports `%c`; `format_cprintf`
uses lower-case hex and raises `ValueError` for a `None` format.

### Building and reading an image

```python
from xv6kit.bufcache import BufferCache
from xv6kit.disk import MemoryDisk
from xv6kit.fs import FileSystem
from xv6kit.layout import BSIZE, Superblock
from xv6kit.log import Log
from xv6kit.mkfs import ImageBuilder
from xv6kit.tools import cat, ls

builder = ImageBuilder(1000, 200, 30)
builder.add_file("hello", b"hi\n")
image = builder.finish()

sb = Superblock.unpack(image[BSIZE:2 * BSIZE])
cache = BufferCache(MemoryDisk(image, dev=1), 30)
log = Log(cache, 1, sb, sb.nlog, 10)
fs = FileSystem(cache, log, 1, 50)

cat(fs, ["hello"])   # b"hi\n"
ls(fs, "/")          # one line per directory entry
```

A `MemoryDisk` holds the image, the `BufferCache` sits on it, the `Log`
groups block writes into atomic transactions, and `FileSystem` provides
inodes, directories (`dirlookup`, `dirlink`) and path names (`namei`,
`nameiparent`) on top of both. `FileTable` and `Pipe` give the open-file
view: reference-counted files, inode writes split into log-sized
transactions, and a 512-byte pipe whose writer blocks while it is full.

### Processes

`ProcessTable` allocates process slots, forks, exits, waits and kills, and
`schedule_round` runs one scheduler pass, returning a log line for each
process that ran. Processes start in the top of four queues and move down
as they use up their runs at a level and up again when left idle.
`procdump` lists the slots in use.

## What it does not do

There is no kernel here to boot and no program is ever run: processes in
`ProcessTable` are bookkeeping only, with no memory, trap frames or
context switches. The file system layer has no system-call level — there
is no `open`, `mkdir`, `unlink` or `link` — and the command-line tools only
read images; nothing writes changes back to an image file except
`xv6-mkfs` when it builds one. Console output goes nowhere but the bytes
that `ConsoleInput.interrupt` returns as its echo.