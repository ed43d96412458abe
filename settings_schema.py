from pydantic import BaseModel, Field, ValidationError

class ServerSettings(BaseModel):
    db_path: str = "fitness.db"
    email_server: str = ""
    email_token: str = ""
    log_level: str = "INFO"
    session_token_bytes: int = Field(32, ge=16)
    reset_token_bytes: int = Field(16, ge=8)
    reset_token_ttl_minutes: int = Field(10, gt=0)
    bcrypt_rounds: int = Field(10, ge=4, le=31)
    admin_page_size: int = Field(10, gt=0)

def validate_settings(data: dict) -> ServerSettings:
    try:
        return ServerSettings(**data)
    except ValidationError as e:
        raise ValueError(str(e))
