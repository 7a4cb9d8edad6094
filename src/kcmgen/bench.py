"""Resource usage of generated multipliers, as reported by yosys."""

import argparse
import json
import subprocess
from string import Template

from io import StringIO
from amaranth.back import rtlil

from .kcm import make_kcm


class RunnerError(Exception):
    pass


def _script(*commands):
    # Every script reads the design from stdin and ends with the statistics.
    lines = ["${quiet} read_rtlil << rtlil", "${rtlil_text}", "rtlil"]
    lines += ["${quiet} " + c for c in commands]
    lines.append("stat -json")
    return Template("\n".join(lines) + "\n")


# Tables are mapped to 4-input LUTs, never to block RAM.
SCRIPTS = {
    "generic": _script("hierarchy -check", "proc", "flatten",
                       "synth -run coarse", "memory_map", "opt -full",
                       "techmap -map +/techmap.v", "opt -fast",
                       "dfflegalize -cell $$_DFF_P_ 0 -cell $$_DFFE_PP_ 0",
                       "abc -lut 4 -dress", "clean -purge"),
    "ice40": _script("synth_ice40 -nobram"),
    "ecp5": _script("synth_lattice -family ecp5 -nobram")
}


def parse_stats(stdout):
    """Extract the JSON document printed by ``stat -json`` from yosys output.

    Raises
    ------
    RunnerError
        If ``stdout`` does not contain the statistics.
    """
    # Find the start of the JSON from the stats command.
    for i, l in enumerate(StringIO(stdout).readlines()):
        if l[0:1] == "{":
            break
    else:
        raise RunnerError("no statistics in yosys output")

    # Restart read since we can't really put back a line...
    stdout = StringIO(stdout)
    for _ in range(i):
        stdout.readline()  # Drain non-JSON lines.
    return json.load(stdout)


def stats(m, script):
    """Synthesize component ``m`` with yosys ``script``; return statistics."""
    rtlil_text = rtlil.convert(m)

    stdin = script.substitute(rtlil_text=rtlil_text, quiet="tee -q")

    popen = subprocess.Popen(["yosys", "-Q", "-T", "-"],
                             stdin=subprocess.PIPE,
                             stdout=subprocess.PIPE,
                             stderr=subprocess.PIPE,
                             encoding="utf-8")
    stdout, stderr = popen.communicate(stdin)
    if popen.returncode:
        raise RunnerError(stderr.strip())

    return parse_stats(stdout)


def parser():
    p = argparse.ArgumentParser(description="kcmgen benchmarking program using yosys")  # noqa: E501
    p.add_argument("-s", choices=tuple(SCRIPTS), default="generic", help="script to execute")  # noqa: E501
    p.add_argument("-c", "--coefficient", type=int, required=True, help="constant to multiply by")  # noqa: E501
    p.add_argument("-w", "--width", type=int, default=8, help="width of the multiplicand")  # noqa: E501
    p.add_argument("--signed", action="store_true", help="multiplicand is signed")  # noqa: E501
    p.add_argument("--pipelined", action="store_true", help="register every table and adder")  # noqa: E501
    return p


def build(args):
    """Create the KCM component described by parsed ``args``."""
    return make_kcm(args.coefficient, args.width, args.signed,
                    args.pipelined)


def main(argv=None):
    args = parser().parse_args(argv)
    print(json.dumps(stats(build(args), SCRIPTS[args.s]), indent=4))


if __name__ == "__main__":
    main()
