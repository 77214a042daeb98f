import pytest


def gaussian_log(
    scf=-100.0,
    enthalpy=None,
    gibbs=None,
    method="RB3LYP",
    basis="6-31G(d)",
    temperature=None,
):
    """Minimalny fragment logu Gaussiana z liniami, na które reaguje ekstraktor."""
    lines = [
        " Entering Gaussian System, Link 0=g16",
        f" Standard basis: {basis}   ",
        f" SCF Done:  E({method}) =  {scf:.9f}     A.U. after   12 cycles",
        " Harmonic frequencies (cm**-1), IR intensities (KM/Mole)",
    ]
    if temperature is not None:
        lines.append(f" Temperature   {temperature:.3f} Kelvin.  Pressure   1.00000 Atm.")
    if enthalpy is not None:
        lines.append(f" Sum of electronic and thermal Enthalpies=          {enthalpy:.6f}")
    if gibbs is not None:
        lines.append(f" Sum of electronic and thermal Free Energies=       {gibbs:.6f}")
    lines.append(" Normal termination of Gaussian 16")
    return "\n".join(lines) + "\n"


@pytest.fixture
def write_log(tmp_path):
    def _write(name, **kwargs):
        path = tmp_path / name
        path.write_text(gaussian_log(**kwargs))
        return str(path)

    return _write
