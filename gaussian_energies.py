import os
import re
from dataclasses import dataclass, field
from typing import Dict, Optional

# Domyślna temperatura Gaussiana (K), gdy w logu brak sekcji termochemii
DEFAULT_TEMPERATURE = 298.15


class EnergyKeyError(KeyError):
    """Nieznany klucz ekstrakcji energii (--td)."""

    def __init__(self, key: str):
        super().__init__(key)
        self.key = key

    def __str__(self):
        return (
            f"Error: '{self.key}' key not found.\n"
            f"Registered keys: {', '.join(registered_keys())}"
        )


@dataclass(frozen=True)
class EnergyPattern:
    name: str
    regex: re.Pattern
    solvent_eligible: bool = False

    def search(self, line: str) -> Optional[str]:
        match = self.regex.search(line)
        return match.group(1) if match else None


def _pattern(name: str, regex: str, solvent_eligible: bool = False) -> EnergyPattern:
    return EnergyPattern(name, re.compile(regex), solvent_eligible)


# Zamknięty rejestr wzorców; energie swobodne mogą dostać poprawkę solwatacyjną
ENERGY_PATTERNS: Dict[str, EnergyPattern] = {
    p.name: p
    for p in (
        _pattern("ent", r"Sum of electronic and thermal Enthalpies=\s+(\S+)"),
        _pattern("ezpe", r"Sum of electronic and zero-point Energies=\s+(\S+)"),
        _pattern(
            "Gibbs",
            r"Sum of electronic and thermal Free Energies=\s+(\S+)",
            solvent_eligible=True,
        ),
        _pattern("ent_cbs_qb3", r"CBS-QB3 Enthalpy=\s+(\S+)"),
        _pattern("e0_cbs_qb3", r"CBS-QB3 \(0 K\)=\s+(\S+)"),
        _pattern("e_cbs_qb3", r"CBS-QB3 Energy=\s+(\S+)"),
        _pattern("g_cbs_qb3", r"CBS-QB3 Free Energy=\s+(\S+)", solvent_eligible=True),
        _pattern("scf", r"SCF Done: .*?=\s+(\S+)"),
        _pattern(
            "orca_gibbs",
            r"Final Gibbs free energy\s+\.\.\.\s+(\S+)\s+Eh",
            solvent_eligible=True,
        ),
    )
}

TEMPERATURE_PATTERN = re.compile(r"Temperature\s+(\S+)\s+Kelvin.*Pressure")
BASIS_PATTERN = re.compile(r"Standard basis:\s*(\S.*)", re.IGNORECASE)
METHOD_PATTERN = re.compile(r"SCF Done:.*?E\((\S+?)\)")


def registered_keys():
    return sorted(ENERGY_PATTERNS)


def get_pattern(key: str) -> EnergyPattern:
    """Zwraca wzorzec dla klucza --td albo rzuca EnergyKeyError."""
    try:
        return ENERGY_PATTERNS[key]
    except KeyError:
        raise EnergyKeyError(key) from None


def format_temperature(value) -> str:
    return f"{float(value):.2f}"


@dataclass
class ExtractionResult:
    """Wynik skanowania jednego pliku: energie wg temperatury, metoda i baza."""

    thermal_data: Dict[str, float] = field(default_factory=dict)
    method: str = ""
    basis: str = ""

    def lowest_temperature(self) -> Optional[str]:
        if not self.thermal_data:
            return None
        return min(self.thermal_data, key=float)


def scan_lines(lines, pattern: EnergyPattern, diagnostics=None, source="") -> ExtractionResult:
    """
    Przechodzi raz po liniach logu i zbiera energie dla wybranego wzorca.

    Metoda: pierwsze trafienie "SCF Done" wygrywa (kolejne kroki optymalizacji
    powtarzają ten blok). Baza: ostatnie trafienie wygrywa.
    TODO: ujednolicić politykę metoda/baza po uzgodnieniu z użytkownikami
    wieloetapowych logów (Opt+Freq z --Link1--).
    """
    result = ExtractionResult()
    current_temp = format_temperature(DEFAULT_TEMPERATURE)

    for line in lines:
        match = BASIS_PATTERN.search(line)
        if match:
            result.basis = match.group(1).rstrip()

        if not result.method:
            match = METHOD_PATTERN.search(line)
            if match:
                result.method = match.group(1)

        match = TEMPERATURE_PATTERN.search(line)
        if match:
            try:
                current_temp = format_temperature(match.group(1))
            except ValueError:
                if diagnostics is not None:
                    diagnostics.warn(
                        f"Warning: Unreadable temperature '{match.group(1)}' in '{source}'."
                    )

        token = pattern.search(line)
        if token is not None:
            try:
                result.thermal_data[current_temp] = float(token)
            except ValueError:
                if diagnostics is not None:
                    diagnostics.warn(
                        f"Warning: Non-numeric energy '{token}' in '{source}' ignored."
                    )

    return result


def extract_energy(file_path, pattern: EnergyPattern, diagnostics=None) -> ExtractionResult:
    """
    Czyta log Gaussiana (z rozwinięciem '~') i wyciąga energię wg wzorca.
    Błąd otwarcia pliku nie przerywa pracy: ostrzeżenie i pusty wynik.
    """
    path = os.path.expanduser(str(file_path))

    try:
        with open(path, "r", encoding="utf-8", errors="ignore") as f:
            return scan_lines(f, pattern, diagnostics, source=str(file_path))
    except OSError as e:
        if diagnostics is not None:
            diagnostics.warn(f"Could not open file '{path}': {e.strerror or e}")
        return ExtractionResult()
