import sys
from dataclasses import dataclass
from typing import Dict, List, Optional, Union

import numpy as np
import pandas as pd

from gaussian_energies import EnergyPattern, extract_energy

# Stała konwersji Hartree -> kcal/mol
EH2KCAL = 627.509
# Poprawka solwatacyjna dla energii swobodnych (1.89 kcal/mol w Hartree)
SOLVENT_CORRECTION = 1.89 / EH2KCAL

GROUP_SEPARATOR = "+"

Temperature = Union[float, str]


class NoEnergiesError(RuntimeError):
    """Po ekstrakcji i grupowaniu nie została żadna energia do raportu."""

    def __str__(self):
        return "Error: no energies to report."


class Diagnostics:
    """
    Zbiera ostrzeżenia i komunikaty --verbose zamiast globalnych printów.
    Ostrzeżenia idą od razu na stderr, komunikaty verbose na stdout.
    """

    def __init__(self, verbose: bool = False, stream=None, error_stream=None):
        self.verbose = verbose
        self.stream = stream
        self.error_stream = error_stream
        self.warnings: List[str] = []
        self.trace: List[str] = []

    def warn(self, message: str):
        self.warnings.append(message)
        print(message, file=self.error_stream or sys.stderr)

    def info(self, message: str):
        self.trace.append(message)
        if self.verbose:
            print(message, file=self.stream or sys.stdout)


@dataclass
class EnergyRecord:
    key: str
    energy: float
    temperature: Temperature
    method: str = ""
    basis: str = ""


@dataclass
class Unit:
    label: str
    factor: float
    precision: Optional[int] = None


UNITS: Dict[str, Unit] = {
    "kcal": Unit("kcal/mol", 1.0),
    "kJ": Unit("kJ/mol", 4.184),
    "cm": Unit("cm^-1", 349.757),
    "ev": Unit("eV", 1 / 23.06, precision=3),
}


def unit_label(factor: float) -> str:
    for unit in UNITS.values():
        if abs(factor - unit.factor) < 0.0001:
            return unit.label
    return "unknown unit"


@dataclass
class ConsistencySummary:
    temperature: str
    method: str
    basis: str


@dataclass
class ReportSettings:
    extraction_key: str = "ent"
    unit_factor: float = 1.0
    precision: int = 1
    total: bool = False
    sort: bool = True
    terse: bool = False


def _format_temp_value(value: Temperature) -> str:
    return f"{value:.2f}" if isinstance(value, float) else str(value)


def _temperature_order(value: Temperature):
    # liczby rosnąco, etykiety "Mixed: ..." na końcu
    if isinstance(value, float):
        return (0, value, "")
    return (1, 0.0, str(value))


def _join_sorted(values, numeric: bool = False) -> str:
    if numeric:
        ordered = sorted(values, key=_temperature_order)
        return ", ".join(_format_temp_value(v) for v in ordered)
    return ", ".join(sorted(values))


def build_records(
    files: List[str],
    pattern: EnergyPattern,
    apply_solvent: bool = False,
    diagnostics: Optional[Diagnostics] = None,
    extractor=extract_energy,
) -> Dict[str, EnergyRecord]:
    """
    Tworzy magazyn rekordów: jeden rekord na unikalny plik.
    Brana jest najniższa temperatura znaleziona w pliku.
    """
    diagnostics = diagnostics or Diagnostics()
    store: Dict[str, EnergyRecord] = {}

    for file_path in dict.fromkeys(files):
        diagnostics.info(f"Processing file: {file_path}")
        result = extractor(file_path, pattern, diagnostics)
        temp = result.lowest_temperature()

        if temp is None:
            diagnostics.warn(f"Error: No energy value extracted from file '{file_path}'.")
            continue

        record = EnergyRecord(
            key=file_path,
            energy=result.thermal_data[temp],
            temperature=float(temp),
            method=result.method,
            basis=result.basis,
        )
        diagnostics.info(
            f"Extracted from '{file_path}': energy = {record.energy} at T = {temp} K, "
            f"method = {record.method}, basis set = {record.basis}"
        )

        if apply_solvent and pattern.solvent_eligible:
            record.energy += SOLVENT_CORRECTION
            diagnostics.info(
                f"Applied solvent correction to '{file_path}': now energy = {record.energy}"
            )

        store[file_path] = record

    return store


def _reconcile(values, group_id: str, what: str, diagnostics: Diagnostics, numeric=False):
    if len(values) == 1:
        return next(iter(values))
    joined = _join_sorted(values, numeric=numeric)
    diagnostics.warn(f"Warning: Group {group_id} has inconsistent {what}: {joined}")
    return f"Mixed: {joined}"


def combine_groups(
    store: Dict[str, EnergyRecord],
    groups: Dict[str, List[str]],
    zero_ref: str = "",
    diagnostics: Optional[Diagnostics] = None,
) -> Optional[float]:
    """
    Łączy pliki z grup w rekordy złożone (suma energii) i usuwa pojedyncze
    pliki należące do jakiejkolwiek grupy. Zwraca energię grupy wskazanej
    przez --zero (albo None).
    """
    diagnostics = diagnostics or Diagnostics()
    group_zero = None
    to_remove = set()

    for group_id, members in groups.items():
        if not members:
            continue

        included = [store[name] for name in members if name in store]
        to_remove.update(members)

        if not included:
            diagnostics.warn(f"Warning: Group {group_id} has no extracted energies; skipped.")
            continue

        key = "".join(GROUP_SEPARATOR + r.key for r in included)
        energy = sum(r.energy for r in included)

        composite = EnergyRecord(
            key=key,
            energy=energy,
            temperature=_reconcile(
                {r.temperature for r in included}, group_id, "temperatures", diagnostics, numeric=True
            ),
            method=_reconcile({r.method for r in included}, group_id, "methods", diagnostics),
            basis=_reconcile({r.basis for r in included}, group_id, "basis sets", diagnostics),
        )
        store[key] = composite
        diagnostics.info(
            f"Group {group_id} combined files: {', '.join(members)} => Combined energy: {energy}, "
            f"temperature: {_format_temp_value(composite.temperature)}, "
            f"method: {composite.method}, basis: {composite.basis}"
        )

        if zero_ref == str(group_id):
            group_zero = energy
            diagnostics.info(f"Zero reference set by group {group_id} with energy: {energy}")

    for name in sorted(to_remove):
        if store.pop(name, None) is not None:
            diagnostics.info(f"Removed individual file '{name}' as part of a grouped set")

    return group_zero


def _common_value(values, what: str, diagnostics: Diagnostics, numeric=False) -> str:
    if not values:
        return "Not available"
    if len(values) == 1:
        value = next(iter(values))
        if numeric and isinstance(value, float):
            return f"{value:.2f} K"
        return str(value)
    label = f"Inconsistent: {_join_sorted(values, numeric=numeric)}"
    diagnostics.warn(f"Warning: Inconsistent {what} detected among files: {label}")
    return label


def check_consistency(
    store: Dict[str, EnergyRecord], diagnostics: Optional[Diagnostics] = None
) -> ConsistencySummary:
    """Sprawdza zgodność metody, bazy i temperatury; nie modyfikuje magazynu."""
    diagnostics = diagnostics or Diagnostics()
    records = list(store.values())

    return ConsistencySummary(
        method=_common_value({r.method for r in records}, "methods", diagnostics),
        basis=_common_value({r.basis for r in records}, "basis sets", diagnostics),
        temperature=_common_value(
            {r.temperature for r in records if r.temperature not in (None, "")},
            "temperatures",
            diagnostics,
            numeric=True,
        ),
    )


def resolve_reference(
    store: Dict[str, EnergyRecord],
    zero_ref: str = "",
    group_zero: Optional[float] = None,
    diagnostics: Optional[Diagnostics] = None,
) -> float:
    """
    Wybiera energię zerową. Kolejność: energia grupy z --zero,
    rekord o kluczu równym --zero, minimum ze wszystkich rekordów.
    """
    diagnostics = diagnostics or Diagnostics()
    if not store:
        raise NoEnergiesError()

    if group_zero is not None:
        diagnostics.info(f"Zero reference (group override): using grouped energy {group_zero}")
        return group_zero

    if zero_ref and zero_ref in store:
        reference = store[zero_ref].energy
        diagnostics.info(f"Zero reference provided: using '{zero_ref}' with energy {reference}")
        return reference

    if zero_ref:
        diagnostics.warn(f"Warning: Zero reference '{zero_ref}' not found; using minimum energy.")

    reference = float(np.min([r.energy for r in store.values()]))
    diagnostics.info(f"Minimum energy (reference) determined as: {reference}")
    return reference


def convert_energies(
    store: Dict[str, EnergyRecord], reference: float, unit_factor: float = 1.0, total: bool = False
):
    """Przelicza energie w miejscu na wartości względne w wybranej jednostce."""
    if total or not store:
        return

    records = list(store.values())
    energies = np.array([r.energy for r in records], dtype=float)
    relative = (energies - reference) * EH2KCAL * unit_factor

    for record, value in zip(records, relative):
        record.energy = float(value)


def records_to_frame(store: Dict[str, EnergyRecord]) -> pd.DataFrame:
    rows = [
        {
            "key": r.key,
            "energy": r.energy,
            "temperature": _format_temp_value(r.temperature),
            "method": r.method,
            "basis": r.basis,
        }
        for r in store.values()
    ]
    return pd.DataFrame(rows, columns=["key", "energy", "temperature", "method", "basis"])


def sort_frame(df: pd.DataFrame, sort: bool = True) -> pd.DataFrame:
    if sort:
        return df.sort_values(["energy", "key"], kind="mergesort").reset_index(drop=True)
    return df.sort_values("key", kind="mergesort").reset_index(drop=True)


def summary_header(settings: ReportSettings, summary: ConsistencySummary) -> List[str]:
    mode = "Total Energies" if settings.total else "Relative Energies"
    sorting = "Sorted (lowest to highest)" if settings.sort else "Unsorted"
    rule = "-" * 44

    return [
        "",
        rule,
        "Summary Information:",
        f"Units:                {unit_label(settings.unit_factor)}",
        f"Calculation Mode:     {mode}",
        f"Sorting:              {sorting}",
        f"Thermal Extraction:   {settings.extraction_key}",
        f"Temperature:          {summary.temperature}",
        f"Method:               {summary.method}",
        f"Basis Set:            {summary.basis}",
        "Solvent/Grid/etc      Not Analyzed (you need to check it manually)",
        rule,
    ]


def format_row(key: str, energy: float, precision: int) -> str:
    return f"{key:<40} {energy:10.{precision}f}"


def render_report(
    store: Dict[str, EnergyRecord],
    settings: ReportSettings,
    summary: Optional[ConsistencySummary] = None,
) -> str:
    lines = []
    if not settings.terse and summary is not None:
        lines.extend(summary_header(settings, summary))

    df = sort_frame(records_to_frame(store), sort=settings.sort)
    for key, energy in zip(df["key"], df["energy"]):
        lines.append(format_row(key, energy, settings.precision))

    return "\n".join(lines)
