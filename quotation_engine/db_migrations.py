from __future__ import annotations

from pathlib import Path

import click
from alembic import command
from alembic.config import Config as AlembicConfig
from flask import Flask

from quotation_engine.db import get_db
from quotation_engine.policies import VALID_ROLES


PROJECT_ROOT = Path(__file__).resolve().parents[1]


def to_sqlalchemy_url(raw_db_path: str | None) -> str:
    """Map DB_PATH (a file path or a postgres DSN) to a SQLAlchemy URL for alembic."""
    value = (raw_db_path or "").strip()
    if not value:
        raise RuntimeError("DB_PATH indefinido para migrations.")
    if value.startswith("postgres://"):
        value = "postgresql://" + value[len("postgres://") :]
    if "://" in value:
        return value
    return f"sqlite:///{Path(value).expanduser().resolve().as_posix()}"


def build_alembic_config(app: Flask) -> AlembicConfig:
    ini_path = PROJECT_ROOT / "alembic.ini"
    if not ini_path.exists():
        raise RuntimeError("alembic.ini nao encontrado na raiz do projeto.")
    cfg = AlembicConfig(str(ini_path))
    cfg.set_main_option("script_location", (PROJECT_ROOT / "migrations").as_posix())
    cfg.set_main_option("sqlalchemy.url", to_sqlalchemy_url(app.config.get("DB_PATH")))
    return cfg


def register_db_cli(app: Flask) -> None:
    @app.cli.group("db")
    def db_group() -> None:
        """Migrations do schema de cotacoes (Alembic)."""

    @db_group.command("upgrade")
    @click.argument("revision", default="head")
    def db_upgrade(revision: str) -> None:
        command.upgrade(build_alembic_config(app), revision)
        click.echo(f"Schema atualizado ate {revision}.")

    @db_group.command("downgrade")
    @click.argument("revision", default="-1")
    def db_downgrade(revision: str) -> None:
        command.downgrade(build_alembic_config(app), revision)
        click.echo(f"Schema revertido ate {revision}.")

    @db_group.command("current")
    def db_current() -> None:
        command.current(build_alembic_config(app), verbose=True)

    @db_group.command("history")
    def db_history() -> None:
        command.history(build_alembic_config(app))


def _format_user(user: dict) -> str:
    state = "ativo" if user["is_active"] else "inativo"
    return f"{user['id']}\t{user['email']}\t{user['role']}\t{state}\t{user['full_name'] or ''}"


def register_users_cli(app: Flask) -> None:
    from quotation_engine.infrastructure.repositories import UserDirectoryRepository

    users = UserDirectoryRepository()
    role_choice = click.Choice(sorted(VALID_ROLES))

    @app.cli.group("users")
    def users_group() -> None:
        """Diretorio local de usuarios usado na distribuicao de aprovacoes e nas notificacoes."""

    @users_group.command("add")
    @click.argument("email")
    @click.option("--role", type=role_choice, required=True)
    @click.option("--name", "full_name", default=None)
    @click.option("--inactive", is_flag=True)
    def users_add(email: str, role: str, full_name: str | None, inactive: bool) -> None:
        db = get_db()
        with db.transaction():
            if users.get_by_email(db, email):
                raise click.ClickException(f"Usuario {email} ja cadastrado.")
            user_id = users.create(db, email=email, full_name=full_name, role=role, is_active=not inactive)
        click.echo(f"Usuario {user_id} cadastrado como {role}.")

    @users_group.command("list")
    @click.option("--role", type=role_choice, default=None)
    def users_list(role: str | None) -> None:
        for user in users.list_directory(get_db(), role=role):
            click.echo(_format_user(user))

    @users_group.command("deactivate")
    @click.argument("email")
    def users_deactivate(email: str) -> None:
        db = get_db()
        with db.transaction():
            if not users.set_active(db, email=email, is_active=False):
                raise click.ClickException(f"Usuario {email} nao encontrado.")
        click.echo(f"Usuario {email} desativado; deixa de receber novas aprovacoes.")
