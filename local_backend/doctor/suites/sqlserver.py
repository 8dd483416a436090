"""SQL Server checks through sqlcmd."""

from __future__ import annotations

from local_backend.core.exceptions import expect
from local_backend.doctor.results import Category
from local_backend.doctor.suite import Check, ServiceSuite
from local_backend.services.sqlserver import (
    invoke_sqlserver_command,
    parse_sqlcmd_rows,
    sqlserver_scalar,
)

TABLE = "dbo.doctor_check"


class SqlServerSuite(ServiceSuite):
    service = "sqlserver"

    @property
    def database(self) -> str:
        return f"doctor_test_{self.run_id}"

    def checks(self) -> list[Check]:
        return [
            ("Server version", Category.CONNECTIVITY, self.check_version),
            ("Authenticate as sa", Category.AUTHENTICATION, self.check_login),
            ("Create database", Category.CRUD, self.check_create_database),
            ("Create table", Category.CRUD, self.check_create_table),
            ("Insert rows", Category.CRUD, self.check_insert),
            ("Select rows", Category.CRUD, self.check_select),
            ("Update row", Category.CRUD, self.check_update),
            ("Delete row", Category.CRUD, self.check_delete),
        ]

    def cleanup_checks(self) -> list[Check]:
        return [("Drop test database", Category.CLEANUP, self.check_drop_database)]

    def _query(self, sql: str, what: str, database: str | None = None):
        return self.require(
            invoke_sqlserver_command(self.settings, sql, database=database or self.database),
            what,
        )

    def check_version(self):
        result = self._query("SELECT @@VERSION", "SELECT @@VERSION", database="master")
        version = sqlserver_scalar(result) or ""
        expect("Microsoft SQL Server" in version, f"unexpected version string {version!r}")
        return {"version": version}

    def check_login(self):
        result = self._query("SELECT SUSER_SNAME()", "SELECT SUSER_SNAME()", database="master")
        login = sqlserver_scalar(result)
        expect(login == "sa", f"connected as {login!r}, expected 'sa'")

    def check_create_database(self):
        result = invoke_sqlserver_command(
            self.settings, f"CREATE DATABASE [{self.database}]", database="master"
        )
        if not result.success and result.contains("already exists"):
            return {"benign": "already exists"}
        self.require(result, f"create database {self.database}")

    def check_create_table(self):
        self._query(
            f"CREATE TABLE {TABLE} (id INT PRIMARY KEY, name NVARCHAR(100), value INT)",
            "create table",
        )

    def check_insert(self):
        self._query(
            f"INSERT INTO {TABLE} (id, name, value) VALUES (1, 'alpha', 10), (2, 'beta', 20)",
            "insert rows",
        )

    def check_select(self):
        result = self._query(f"SELECT id, name, value FROM {TABLE} ORDER BY id", "select rows")
        rows = parse_sqlcmd_rows(result.output)
        expected = [("1", "alpha", "10"), ("2", "beta", "20")]
        expect(rows == expected, f"selected {rows}, expected {expected}")
        return {"rows": len(rows)}

    def check_update(self):
        result = self._query(
            f"UPDATE {TABLE} SET value = 11 WHERE id = 1; SELECT value FROM {TABLE} WHERE id = 1",
            "update row",
        )
        value = sqlserver_scalar(result)
        expect(value == "11", f"value after update is {value!r}")

    def check_delete(self):
        result = self._query(
            f"DELETE FROM {TABLE} WHERE id = 2; SELECT COUNT(*) FROM {TABLE}",
            "delete row",
        )
        count = sqlserver_scalar(result)
        expect(count == "1", f"{count} rows left after delete, expected 1")

    def check_drop_database(self):
        self._query(
            f"ALTER DATABASE [{self.database}] SET SINGLE_USER WITH ROLLBACK IMMEDIATE; "
            f"DROP DATABASE [{self.database}]",
            f"drop database {self.database}",
            database="master",
        )
