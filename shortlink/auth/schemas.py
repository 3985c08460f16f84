import uuid
from fastapi_users import schemas


# fastapi-users base schemas already read from ORM attributes
class UserRead(schemas.BaseUser[uuid.UUID]):
    pass


class UserCreate(schemas.BaseUserCreate):
    pass
