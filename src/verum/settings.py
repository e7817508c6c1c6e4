from pathlib import Path
import os
from typing import Literal, Optional

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="VERUM_")

    data_dir: Path = Path("./data")
    # Reference artifacts fingerprinted at startup
    assets_dir: Path = Path("./assets")
    constitution_file: str = "constitution.pdf"
    model_pack_file: str = "model_pack.json"
    rules_dir: str = "rules"
    logo_file: str = "vo_logo.png"

    # Signing key material (PEM block or JWK JSON); never logged
    signing_key: SecretStr = SecretStr("")
    key_encoding: Literal["auto", "pem", "jwk"] = "auto"
    issuer: str = "verum.omnis"
    token_ttl_seconds: int = 3600

    product_id: str = "VO-Web32"
    policy_text: str = (
        "Free for private citizens. Institutions: 20% of recovered fraud "
        "or per-case licensing as agreed."
    )
    anchor_chain: str = "eth"
    anchor_policy: Literal["first-wins", "reject", "overwrite"] = "first-wins"
    store_backend: Literal["memory", "file"] = "file"

    fingerprint_timeout_seconds: Optional[float] = None  # no limit when unset
    log_level: str = "INFO"

    def model_post_init(self, __context):  # type: ignore[override]
        # Deployments configured for the hosted service export the bare name
        legacy = os.getenv("VOSIGNINGKEY")
        if legacy and not self.signing_key.get_secret_value():
            self.signing_key = SecretStr(legacy)

    @property
    def receipts_dir(self) -> Path:
        return self.data_dir / "receipts"


settings = Settings()
