import pytest

from station_finder.distance import distance_km, nearest
from station_finder.errors import NoCandidates

from conftest import make_station

WARSAW = (52.2297, 21.0122)
KRAKOW = (50.0647, 19.9450)


def test_warsaw_krakow_distance():
    assert distance_km(*WARSAW, *KRAKOW) == pytest.approx(252, abs=5)


@pytest.mark.parametrize("a, b", [
    (WARSAW, KRAKOW),
    ((0.0, 0.0), (0.0, 180.0)),
    ((-33.8688, 151.2093), (51.5074, -0.1278)),
    ((90.0, 0.0), (-90.0, 0.0)),
])
def test_distance_is_symmetric_and_zero_on_identity(a, b):
    assert distance_km(*a, *a) == 0
    assert distance_km(*b, *b) == 0
    assert distance_km(*a, *b) == distance_km(*b, *a)


def test_antipodal_points_are_half_the_circumference():
    assert distance_km(0.0, 0.0, 0.0, 180.0) == pytest.approx(3.141592653589793 * 6371, rel=1e-9)


def test_nearest_on_empty_set_raises():
    with pytest.raises(NoCandidates):
        nearest(*WARSAW, [])


def test_nearest_single_station_returns_its_distance():
    krakow = make_station(2, "Kraków", *KRAKOW)
    station, distance = nearest(*WARSAW, [krakow])
    assert station == krakow
    assert distance == distance_km(*WARSAW, *KRAKOW)


def test_nearest_picks_minimum_and_first_on_ties():
    far = make_station(1, "Kraków", *KRAKOW)
    first = make_station(2, "Warszawa", 52.0, 21.0)
    twin = make_station(3, "Warszawa", 52.0, 21.0)
    station, _ = nearest(*WARSAW, [far, first, twin])
    assert station.id == 2


@pytest.mark.parametrize("lat", [x / 10 for x in range(-890, 891, 3)])
def test_near_antipodal_points_stay_in_domain(lat):
    distance = distance_km(lat, 0.0, -lat, 180.0)
    assert distance == pytest.approx(3.141592653589793 * 6371, rel=1e-6)
    assert distance == distance_km(-lat, 180.0, lat, 0.0)
