"""
管理接口认证依赖 (Admin API Authentication Dependency)

校验请求携带的 Bearer Token 是否与配置的 ADMIN_API_TOKEN 一致。
"""
import hmac

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from healthwatch.core.config import settings

# 未携带 Authorization 头时交由下方统一返回 401
admin_security = HTTPBearer(auto_error=False)


async def verify_admin_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(admin_security),
) -> str:
    """验证管理员 Bearer Token（常量时间比较），返回令牌本身。"""
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing admin token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not hmac.compare_digest(credentials.credentials.encode(), settings.admin_api_token.encode()):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid admin token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return credentials.credentials
