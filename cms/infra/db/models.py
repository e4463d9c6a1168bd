from sqlalchemy import BigInteger, CheckConstraint, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from cms.common.permissions import Roles
from cms.infra.db.base import Base, TimestampMixin

ROLE_CHECK_SQL = "role IN ({})".format(", ".join(f"'{role}'" for role in Roles.ALL))


class User(Base, TimestampMixin):
    """CMS 账户。

    字段
    -------
    id : 自增主键。
    username : 登录名，注册时去除首尾空白并转为小写，唯一。
    email : 邮箱；注册流程由用户名派生一个合成地址，唯一。
    password_hash : passlib 生成的密码哈希，从不保存明文。
    role : admin / creator / user / guest 之一。
    created_at / updated_at : 来自 `TimestampMixin`。
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer(), "sqlite"),
        primary_key=True,
        autoincrement=True,
    )
    username: Mapped[str] = mapped_column(String(32), nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    role: Mapped[str] = mapped_column(String(16), nullable=False, default=Roles.DEFAULT)

    __table_args__ = (
        CheckConstraint(ROLE_CHECK_SQL, name="ck_users_role"),
        Index("uq_users_username", "username", unique=True),
        Index("uq_users_email", "email", unique=True),
        Index("ix_users_role", "role"),
    )
