# scripts/create_admin.py

import asyncio
import logging

import typer

from app.core.database import get_async_session_context
from app.domains.usr import crud as usr_crud
from app.domains.usr import schemas as usr_schemas
from app.domains.usr.models import UserRole

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

cli = typer.Typer()


async def create_admin_user(user_in: usr_schemas.UserCreate) -> bool:
    """
    관리자 사용자를 생성합니다. 사용자명 또는 이메일이 이미 있으면 False를 반환합니다.
    """
    async with get_async_session_context() as db:
        if await usr_crud.user.get_by_username(db, username=user_in.username):
            typer.echo(f"오류: 이미 존재하는 사용자명입니다: {user_in.username}")
            return False
        if user_in.email and await usr_crud.user.get_by_email(db, email=user_in.email):
            typer.echo(f"오류: 이미 존재하는 이메일입니다: {user_in.email}")
            return False

        await usr_crud.user.create(db, obj_in=user_in)
    logger.info("관리자 계정 생성: %s", user_in.username)
    return True


@cli.command()
def main(
    username: str = typer.Option(
        ..., '--username', '-u',
        prompt="관리자 사용자명을 입력하세요",
        help="로그인 시 사용할 사용자명입니다."
    ),
    email: str = typer.Option(
        ..., '--email', '-e',
        prompt="관리자 이메일을 입력하세요",
        help="관리자 계정의 이메일 주소입니다."
    ),
    password: str = typer.Option(
        ..., '--password', '-p',
        prompt="관리자 비밀번호를 입력하세요",
        hide_input=True,
        confirmation_prompt=True,
        help="관리자 계정의 비밀번호입니다. (최소 8자 이상)"
    ),
    full_name: str = typer.Option(
        "Admin", '--name', '-n',
        help="관리자의 이름입니다."
    ),
):
    """
    LIMS Import API의 관리자(ADMIN) 계정을 생성합니다.
    """
    if len(password) < 8:
        typer.echo("오류: 비밀번호는 최소 8자 이상이어야 합니다.")
        raise typer.Abort()

    user_data = usr_schemas.UserCreate(
        username=username,
        email=email,
        password=password,
        full_name=full_name,
        role=UserRole.ADMIN,
    )
    if not asyncio.run(create_admin_user(user_data)):
        raise typer.Exit(code=1)
    typer.echo(f"관리자 계정이 생성되었습니다: {username}")


if __name__ == "__main__":
    cli()
