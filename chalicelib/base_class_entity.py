import copy
from typing import Dict

from chalicelib.constants.substitute_keys import from_db, to_db
from chalicelib.utils import exceptions
from chalicelib.utils.data import substitute_keys
from chalicelib.utils.logger import logger


class EntityBase:
    required_fields_validation = {}
    optional_fields_validation = {}

    def __init__(self, id_):
        self.id_: str = id_
        self.record_type: str = ''

    def _to_dict(self) -> Dict:
        """
        Should be re-implemented in each child class
        :return:
        dict of item's attributes
        """
        return {
            'id_': self.id_
        }

    def to_dict(self) -> Dict:
        return self._to_dict()

    @classmethod
    def from_dict(cls, record: Dict):
        """
        Builds an entity from a dict produced by to_dict() or to_ui()
        """
        item = dict(record)
        substitute_keys(dict_to_process=item, base_keys=to_db)
        return cls(**item)

    def snapshot(self):
        """
        By-value copy, later changes of the source entity do not reach the copy
        """
        return self.__class__.from_dict(copy.deepcopy(self._to_dict()))

    @staticmethod
    def raise_validation_error(key):
        message = f'Validation error occurred while validating field={key}'
        logger.error(f"raise_validation_error ::: {message}")
        raise exceptions.InvalidRequest(message)

    def _validate_mandatory_fields(self):
        record = self._to_dict()
        for key, validator_func in self.required_fields_validation.items():
            if validator_func(record.get(key)) is False:
                self.raise_validation_error(key)

    def _validate_optional_fields(self):
        record = self._to_dict()
        for key, validator_func in self.optional_fields_validation.items():
            if record.get(key) is not None and validator_func(record.get(key)) is False:
                self.raise_validation_error(key)

    def validate(self):
        self._validate_mandatory_fields()
        self._validate_optional_fields()
        return self

    def _to_ui(self) -> Dict:
        item = self._to_dict()
        substitute_keys(dict_to_process=item, base_keys=from_db)
        return item

    def to_ui(self) -> Dict:
        return self._to_ui()

    def __eq__(self, other):
        return type(self) is type(other) and self._to_dict() == other._to_dict()

    def __repr__(self):
        return f'{self.__class__.__name__}(id_={self.id_!r})'
