import logging
from typing import Any, Dict, List

from pymongo import MongoClient, ASCENDING, ReplaceOne

logger = logging.getLogger(__name__)


class _Session:
    def __init__(self, db):
        self._db = db
        self._added = []

    def add(self, obj):
        self._added.append(obj)

    def flush(self):
        ops: Dict[str, List[Any]] = {}

        for obj in list(self._added):
            coll_name = _get_collection_name(obj.__class__)
            if getattr(obj, 'id', None) is None:
                obj.id = get_next_id(self._db, coll_name)
            data = obj.to_dict()
            # _id is immutable once the document exists
            data.pop('_id', None)
            ops.setdefault(coll_name, []).append(ReplaceOne({'id': obj.id}, data, upsert=True))

        for coll_name, operations in ops.items():
            if operations:
                # ordered=False keeps going past a single failing document
                self._db[coll_name].bulk_write(operations, ordered=False)
                logger.debug("[MongoDB] Wrote %d operations to %s", len(operations), coll_name)

    def commit(self):
        try:
            self.flush()
        finally:
            self._added.clear()

    def rollback(self):
        self._added.clear()


class _DB:
    def __init__(self):
        self.client: MongoClient | None = None
        self._db = None
        self.session = None

    def init_app(self, app):
        uri = app.config.get('MONGO_URI') or 'mongodb://localhost:27017'
        dbname = app.config.get('MONGO_DBNAME', 'erp')
        # MongoClient connects lazily; /health performs the first ping
        self.client = MongoClient(uri, serverSelectionTimeoutMS=8000)
        self.bind(self.client[dbname])

    def bind(self, database):
        """Attach an already-open database handle (used by scripts and tests)."""
        self._db = database
        self.session = _Session(database)

    def ping(self):
        return self._db.command('ping')

    def create_all(self):
        if self._db is None:
            return
        try:
            self._db['classassignment'].create_index(
                [('program', ASCENDING), ('branch', ASCENDING), ('semester', ASCENDING), ('section', ASCENDING)]
            )
            self._db['classassignment'].create_index([('teacher_id', ASCENDING)])
            self._db['user'].create_index('uid')
            self._db['student'].create_index([('program', ASCENDING), ('branch', ASCENDING)])
            logger.info("[MongoDB] Indexes created successfully.")
        except Exception as e:
            logger.warning("[MongoDB] Index creation failed: %s", e)


db = _DB()


def _get_collection_name(cls):
    return getattr(cls, '__collection__', None) or cls.__name__.lower()


def get_next_id(mongo_db, name: str) -> int:
    counters = mongo_db['__counters__']
    res = counters.find_one_and_update({'_id': name}, {'$inc': {'seq': 1}}, upsert=True, return_document=True)
    return int(res['seq'])


class ModelMeta(type):
    def __getattr__(cls, item):
        # `Model.query` starts a new Query
        if item == 'query':
            return Query(cls)
        raise AttributeError(item)


class Query:
    def __init__(self, model_cls):
        self.model_cls = model_cls
        self._filter = {}
        self._sort = None
        self._projection = None

    def filter_by(self, **kwargs):
        self._filter.update(kwargs)
        return self

    def filter_in(self, field_name, values):
        """Restrict ``field_name`` to any of ``values`` (Mongo ``$in``)."""
        self._filter[field_name] = {'$in': list(values)}
        return self

    def options(self, projection):
        """
        Specify fields to include/exclude.
        Usage: Model.query.options({'field1': 1, 'field2': 1})
        """
        self._projection = projection
        return self

    def order_by(self, *fields: str):
        self._sort = [(name, ASCENDING) for name in fields] or None
        return self

    def _collection(self):
        return db._db[_get_collection_name(self.model_cls)]

    def all(self):
        cursor = self._collection().find(self._filter, self._projection)
        if self._sort:
            cursor = cursor.sort(self._sort)
        return [self.model_cls(**doc) for doc in cursor]

    def first(self):
        doc = self._collection().find_one(self._filter, self._projection)
        if not doc:
            return None
        return self.model_cls(**doc)

    def count(self):
        return self._collection().count_documents(self._filter)


class BaseModel(metaclass=ModelMeta):
    def __init__(self, **kwargs):
        for k, v in kwargs.items():
            setattr(self, k, v)

    def to_dict(self) -> Dict[str, Any]:
        d = self.__dict__.copy()
        if '_id' in d and d['_id'] is not None:
            d['_id'] = str(d['_id'])
        return d


# --- Model definitions ---


class ClassAssignment(BaseModel):
    """A course taught to one program/branch/semester/section, optionally owned by a teacher."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        for attr in ('course_code', 'course_name', 'program', 'branch', 'semester', 'section', 'teacher_id'):
            if not hasattr(self, attr):
                setattr(self, attr, None)

    @property
    def assignment_id(self) -> str:
        # Prefer the integer sequence id, fall back to Mongo's ObjectId
        ident = getattr(self, 'id', None)
        if ident is None:
            ident = getattr(self, '_id', '')
        return str(ident)

    def __repr__(self):
        return f'<ClassAssignment {self.course_code} {self.program}-{self.branch} Sem-{self.semester} {self.section}>'


class User(BaseModel):
    """Portal account. Teachers are users with role 'teacher'; `uid` is what assignments reference."""

    @property
    def display_name(self):
        return getattr(self, 'name', None) or getattr(self, 'uid', None)

    def __repr__(self):
        return f'<User {getattr(self, "uid", None)} ({getattr(self, "role", None)})>'


class Student(BaseModel):
    def __repr__(self):
        return f'<Student {getattr(self, "student_id", None)}>'
