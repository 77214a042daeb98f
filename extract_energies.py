import argparse
import sys
from pathlib import Path

from energy_table import (
    UNITS,
    Diagnostics,
    NoEnergiesError,
    ReportSettings,
    build_records,
    check_consistency,
    combine_groups,
    convert_energies,
    records_to_frame,
    render_report,
    resolve_reference,
    sort_frame,
    unit_label,
)
from gaussian_energies import EnergyKeyError, get_pattern, registered_keys

GROUP_SLOTS = ("1", "2", "3", "4", "5")

EXAMPLES = """\
Examples:
  extract-energies --td=Gibbs --kJ file1.log file2.log
  extract-energies --g1 file1.log --g1 file2.log --g2 file3.log --zero=1 --verbose
"""


class TotalEnergiesAction(argparse.Action):
    """--toten: energie całkowite, precyzja 6 (chyba że później nadpisana)."""

    def __init__(self, option_strings, dest, **kwargs):
        super().__init__(option_strings, dest, nargs=0, **kwargs)

    def __call__(self, parser, namespace, values, option_string=None):
        namespace.total = True
        namespace.precision = 6


class UnitAction(argparse.Action):
    """--kJ/--cm/--ev: ostatnia jednostka wygrywa, eV wymusza precyzję 3."""

    def __init__(self, option_strings, dest, unit, **kwargs):
        self.unit = unit
        super().__init__(option_strings, dest, nargs=0, **kwargs)

    def __call__(self, parser, namespace, values, option_string=None):
        setattr(namespace, self.dest, self.unit)
        if UNITS[self.unit].precision is not None:
            namespace.precision = UNITS[self.unit].precision


def non_negative_int(value):
    number = int(value)
    if number < 0:
        raise argparse.ArgumentTypeError(f"precision must be >= 0, got {value}")
    return number


def build_parser():
    parser = argparse.ArgumentParser(
        prog="extract-energies",
        description=(
            "Extracts energies from Gaussian output files and prints relative or total "
            "energies. Files can be combined into up to five groups (--g1 .. --g5), "
            "energies converted between units, and a summary of temperature, method "
            "and basis set printed unless --terse is given."
        ),
        epilog=EXAMPLES,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("paths", nargs="*", help="Output files or directories with output files")
    for slot in GROUP_SLOTS:
        parser.add_argument(
            f"--g{slot}",
            dest=f"g{slot}",
            action="append",
            default=[],
            metavar="FILE",
            help=f"File in group {slot} (repeatable)",
        )
    parser.add_argument(
        "--zero",
        default="",
        help="Reference file (or group number, e.g. '1') whose energy is set to zero",
    )
    parser.add_argument(
        "--td",
        default="ent",
        help=f"Energy to extract, one of: {', '.join(registered_keys())}. Default: ent",
    )
    parser.add_argument(
        "--precision",
        type=non_negative_int,
        default=1,
        help="Number of decimal places in the output. Default: 1",
    )
    parser.add_argument(
        "--toten",
        action=TotalEnergiesAction,
        dest="total",
        default=False,
        help="Print total energies (no relative shift), precision 6",
    )
    parser.add_argument("--kJ", action=UnitAction, unit="kJ", dest="unit", default="kcal",
                        help="Convert energies to kJ/mol")
    parser.add_argument("--cm", action=UnitAction, unit="cm", dest="unit",
                        help="Convert energies to wavenumbers (cm^-1)")
    parser.add_argument("--ev", action=UnitAction, unit="ev", dest="unit",
                        help="Convert energies to eV (precision 3)")
    parser.add_argument("--nosort", action="store_true", help="Do not sort the output")
    parser.add_argument("--solvent", action="store_true",
                        help="Apply the solvent correction to free energies")
    parser.add_argument("--verbose", action="store_true",
                        help="Print detailed processing messages")
    parser.add_argument("--terse", action="store_true",
                        help="Print only final energies without the summary header")
    parser.add_argument("-o", "--output", help="Optional CSV file for the final table")
    return parser


def collect_files(paths):
    """Zbiera pliki z podanych ścieżek; katalogi rozwijane do plików w środku."""
    all_files = []
    for path_str in paths:
        p = Path(path_str).expanduser()
        if p.is_dir():
            all_files.extend(str(f) for f in sorted(p.iterdir()) if f.is_file())
        else:
            all_files.append(path_str)

    return all_files


def write_csv(store, settings, output):
    df = sort_frame(records_to_frame(store), sort=settings.sort)
    df["unit"] = "Hartree" if settings.total else unit_label(settings.unit_factor)
    df.to_csv(output, index=False)


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    groups = {slot: getattr(args, f"g{slot}") for slot in GROUP_SLOTS if getattr(args, f"g{slot}")}

    if not args.paths and not groups:
        parser.print_help()
        return 0

    diagnostics = Diagnostics(verbose=args.verbose)
    diagnostics.info("Starting energy extraction process...")

    try:
        pattern = get_pattern(args.td)
    except EnergyKeyError as e:
        print(e, file=sys.stderr)
        return 1

    file_list = collect_files(args.paths)
    for members in groups.values():
        file_list.extend(members)
    diagnostics.info(f"Initial file list: {', '.join(file_list)}")

    settings = ReportSettings(
        extraction_key=args.td,
        unit_factor=UNITS[args.unit].factor,
        precision=args.precision,
        total=args.total,
        sort=not args.nosort,
        terse=args.terse,
    )

    store = build_records(file_list, pattern, args.solvent, diagnostics)
    group_zero = combine_groups(store, groups, args.zero, diagnostics)

    try:
        summary = check_consistency(store, diagnostics)
        reference = resolve_reference(store, args.zero, group_zero, diagnostics)
    except NoEnergiesError as e:
        print(e, file=sys.stderr)
        return 1

    convert_energies(store, reference, settings.unit_factor, settings.total)
    print(render_report(store, settings, summary))

    if args.output:
        write_csv(store, settings, args.output)
        print(f"\n[INFO] Results written to: {args.output}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
