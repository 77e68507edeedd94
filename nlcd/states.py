"""State FIPS codes and state selection helpers."""

from dataclasses import dataclass

STATE_FIPS: dict[str, str] = {
    'Alabama': '01',
    'Alaska': '02',
    'Arizona': '04',
    'Arkansas': '05',
    'California': '06',
    'Colorado': '08',
    'Connecticut': '09',
    'Delaware': '10',
    'District of Columbia': '11',
    'Florida': '12',
    'Georgia': '13',
    'Hawaii': '15',
    'Idaho': '16',
    'Illinois': '17',
    'Indiana': '18',
    'Iowa': '19',
    'Kansas': '20',
    'Kentucky': '21',
    'Louisiana': '22',
    'Maine': '23',
    'Maryland': '24',
    'Massachusetts': '25',
    'Michigan': '26',
    'Minnesota': '27',
    'Mississippi': '28',
    'Missouri': '29',
    'Montana': '30',
    'Nebraska': '31',
    'Nevada': '32',
    'New Hampshire': '33',
    'New Jersey': '34',
    'New Mexico': '35',
    'New York': '36',
    'North Carolina': '37',
    'North Dakota': '38',
    'Ohio': '39',
    'Oklahoma': '40',
    'Oregon': '41',
    'Pennsylvania': '42',
    'Rhode Island': '44',
    'South Carolina': '45',
    'South Dakota': '46',
    'Tennessee': '47',
    'Texas': '48',
    'Utah': '49',
    'Vermont': '50',
    'Virginia': '51',
    'Washington': '53',
    'West Virginia': '54',
    'Wisconsin': '55',
    'Wyoming': '56',
}

# the CONUS land cover product does not cover Alaska or Hawaii
NON_CONUS_FIPS = frozenset({'02', '15'})

CONUS_FIPS: dict[str, str] = {
    name: fips for name, fips in STATE_FIPS.items() if fips not in NON_CONUS_FIPS
}

_FIPS_TO_NAME = {fips: name for name, fips in STATE_FIPS.items()}


@dataclass
class StateSelection:
    provided: list[str]
    valid: list[str]
    invalid: list[str]


def state_name(fips: str) -> str:
    return _FIPS_TO_NAME.get(fips, f'FIPS {fips}')


def normalize_fips(value: str) -> str:
    """Accept a FIPS code (``'6'``, ``'06'``) or a state name and return the 2-digit code."""
    value = value.strip()
    if value in STATE_FIPS:
        return STATE_FIPS[value]
    lowered = {name.lower(): fips for name, fips in STATE_FIPS.items()}
    if value.lower() in lowered:
        return lowered[value.lower()]
    if value.isdigit():
        return value.zfill(2)
    return value


def select_states(states: list[str] | None, *, all_states: bool = False) -> StateSelection:
    """Resolve the states to process.

    Parameters
    ----------
    states : list[str] | None
        FIPS codes or state names provided by the user.
    all_states : bool, default False
        Select every CONUS state + DC instead of ``states``.

    Returns
    -------
    StateSelection
        Valid codes in ascending FIPS order plus the rejected inputs.

    Raises
    ------
    ValueError
        If nothing valid remains to process.
    """
    if all_states:
        provided = sorted(CONUS_FIPS.values())
    else:
        provided = [normalize_fips(s) for s in states or []]

    known = set(_FIPS_TO_NAME)
    valid = sorted({fips for fips in provided if fips in known})
    invalid = sorted({fips for fips in provided if fips not in known})
    if not valid:
        message = 'No valid states to process.'
        if invalid:
            message += f' Unknown state identifiers: {", ".join(invalid)}'
        raise ValueError(message)
    return StateSelection(provided=provided, valid=valid, invalid=invalid)
