"""Tests for Repository lookups."""

import pytest

from batchorm import Database, Field, Manager, Model, Repository
from batchorm.exceptions import PropertyNotFoundError


class CityRepository(Repository):
    def find_by_country(self, country: str) -> list:
        query = self.create_query().where(self.table.c.country == country)
        return self.fetch(query.order_by(self.table.c.name))


class City(Model):
    __orm__ = {
        "type": "Entity",
        "table": "cities",
        "allow_schema_update": True,
        "repository": CityRepository,
    }

    name = Field("varchar", length=80)
    country = Field("char", length=2)
    population = Field("bigint")


class Street(Model):
    __orm__ = {"type": "Entity", "table": "streets", "allow_schema_update": True}

    name = Field("varchar", length=80)
    city_id = Field("bigint", many_to_one=City, join_property="id")


@pytest.fixture
def cities(memory_db: Database) -> list[City]:
    memory_db.mapper().reconcile_schema(City)
    memory_db.mapper().reconcile_schema(Street)
    uow = memory_db.unit_of_work()
    stored = [
        City(name="Lyon", country="FR", population=522_000),
        City(name="Porto", country="PT", population=232_000),
        City(name="Nice", country="FR", population=342_000),
    ]
    for city in stored:
        uow.persist(city)
    uow.flush()
    return stored


class TestRepository:
    """Tests for the base repository queries."""

    def test_declared_repository_used(self, uow: Manager):
        assert isinstance(uow.get_repository(City), CityRepository)
        assert type(uow.get_repository(Street)) is Repository

    def test_repository_cached(self, uow: Manager):
        assert uow.get_repository(City) is uow.get_repository(City)

    def test_find(self, cities, uow: Manager):
        city = uow.get_repository(City).find(cities[1].id)
        assert city.name == "Porto"
        assert city.id == cities[1].id

    def test_find_missing(self, cities, uow: Manager):
        assert uow.get_repository(City).find(999) is None

    def test_find_all_ordered_by_primary_key(self, cities, uow: Manager):
        found = uow.get_repository(City).find_all()
        assert [c.name for c in found] == ["Lyon", "Porto", "Nice"]

    def test_find_by(self, cities, uow: Manager):
        found = uow.get_repository(City).find_by({"country": "FR"})
        assert [c.name for c in found] == ["Lyon", "Nice"]

    def test_find_by_several_criteria(self, cities, uow: Manager):
        found = uow.get_repository(City).find_by({"country": "FR", "name": "Nice"})
        assert [c.population for c in found] == [342_000]

    def test_find_by_no_match(self, cities, uow: Manager):
        assert uow.get_repository(City).find_by({"country": "DE"}) == []

    def test_find_by_unknown_property(self, cities, uow: Manager):
        with pytest.raises(PropertyNotFoundError) as exc_info:
            uow.get_repository(City).find_by({"mayor": "x"})
        assert "population" in exc_info.value.available

    def test_find_by_entity_value(self, cities, memory_db: Database):
        uow = memory_db.unit_of_work()
        uow.persist(Street(name="Rue de la Republique", city_id=cities[0].id))
        uow.flush()

        found = uow.get_repository(Street).find_by({"city_id": cities[0]})
        assert [s.name for s in found] == ["Rue de la Republique"]

    def test_custom_query(self, cities, uow: Manager):
        found = uow.get_repository(City).find_by_country("FR")
        assert [c.name for c in found] == ["Lyon", "Nice"]

    def test_identity_map(self, cities, memory_db: Database):
        uow = memory_db.unit_of_work()
        repository = uow.get_repository(City)
        first = repository.find(cities[0].id)
        assert repository.find(cities[0].id) is first
        assert repository.find_all()[0] is first

    def test_loaded_changes_not_overwritten_by_reload(self, cities, memory_db: Database):
        uow = memory_db.unit_of_work()
        repository = uow.get_repository(City)
        city = repository.find(cities[0].id)
        city.population = 1

        assert repository.find(cities[0].id).population == 1

    def test_properties(self, uow: Manager):
        assert uow.get_repository(City).properties == ["id", "name", "country", "population"]
