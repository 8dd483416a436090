"""MongoDB health and CRUD checks through mongosh."""

from __future__ import annotations

import json

from local_backend.core.exceptions import expect
from local_backend.doctor.results import Category
from local_backend.doctor.suite import Check, ServiceSuite
from local_backend.services.mongodb import mongo_json

DOCUMENT_ID = "doctor-1"


class MongoDBSuite(ServiceSuite):
    service = "mongodb"

    @property
    def database(self) -> str:
        return f"doctor_test_{self.run_id}"

    def checks(self) -> list[Check]:
        return [
            ("Ping", Category.CONNECTIVITY, self.check_ping),
            ("Authenticate as root", Category.AUTHENTICATION, self.check_authenticated),
            ("Server version", Category.CLUSTER, self.check_version),
            ("Insert document", Category.CRUD, self.check_insert),
            ("Find document", Category.CRUD, self.check_find),
            ("Update document", Category.CRUD, self.check_update),
            ("Create index", Category.CRUD, self.check_create_index),
            ("Aggregate count", Category.CRUD, self.check_aggregate),
            ("Delete document", Category.CRUD, self.check_delete),
        ]

    def cleanup_checks(self) -> list[Check]:
        return [("Drop test database", Category.CLEANUP, self.check_drop_database)]

    def _eval(self, expression: str, what: str, database: str | None = None):
        result = self.require(
            mongo_json(self.settings, expression, database=database or self.database),
            what,
        )
        return result.details

    def check_ping(self):
        reply = self._eval("db.runCommand({ping: 1})", "ping", database="admin")
        expect(_ok(reply), f"ping returned {reply}")

    def check_authenticated(self):
        reply = self._eval(
            "db.runCommand({connectionStatus: 1})", "connectionStatus", database="admin"
        )
        users = reply.get("authInfo", {}).get("authenticatedUsers", [])
        names = [u.get("user") for u in users]
        expect(
            self.settings.mongo_root_username in names,
            f"authenticated users {names} do not include {self.settings.mongo_root_username}",
        )
        return {"users": names}

    def check_version(self):
        version = self._eval("db.version()", "version", database="admin")
        expect(isinstance(version, str) and version, f"unexpected version {version!r}")
        return {"version": version}

    def check_insert(self):
        doc = {"_id": DOCUMENT_ID, "service": "mongodb", "run": self.run_id, "value": 1}
        reply = self._eval(f"db.doctor.insertOne({json.dumps(doc)})", "insertOne")
        expect(reply.get("acknowledged"), f"insert not acknowledged: {reply}")

    def check_find(self):
        doc = self._eval(f"db.doctor.findOne({json.dumps({'_id': DOCUMENT_ID})})", "findOne")
        expect(isinstance(doc, dict), "document not found")
        expect(doc.get("run") == self.run_id, f"found document from run {doc.get('run')!r}")

    def check_update(self):
        reply = self._eval(
            f"db.doctor.updateOne({json.dumps({'_id': DOCUMENT_ID})}, "
            f"{json.dumps({'$set': {'value': 2}})})",
            "updateOne",
        )
        expect(reply.get("modifiedCount") == 1, f"modifiedCount is {reply.get('modifiedCount')}")

    def check_create_index(self):
        name = self._eval("db.doctor.createIndex({run: 1})", "createIndex")
        expect(name == "run_1", f"createIndex returned {name!r}")
        return {"index": name}

    def check_aggregate(self):
        pipeline = [{"$match": {"run": self.run_id}}, {"$count": "n"}]
        rows = self._eval(f"db.doctor.aggregate({json.dumps(pipeline)}).toArray()", "aggregate")
        count = rows[0].get("n") if rows else 0
        expect(count == 1, f"aggregate counted {count} documents")
        return {"count": count}

    def check_delete(self):
        reply = self._eval(
            f"db.doctor.deleteOne({json.dumps({'_id': DOCUMENT_ID})})", "deleteOne"
        )
        expect(reply.get("deletedCount") == 1, f"deletedCount is {reply.get('deletedCount')}")

    def check_drop_database(self):
        reply = self._eval("db.dropDatabase()", "dropDatabase")
        expect(_ok(reply), f"dropDatabase returned {reply}")


def _ok(reply) -> bool:
    return isinstance(reply, dict) and reply.get("ok") in (1, 1.0, True)
