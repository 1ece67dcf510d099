from pydantic import Field
from pydantic_settings import BaseSettings


class SolverSettings(BaseSettings):
    model_config = {"env_prefix": "NRFLOW_", "case_sensitive": False}

    # Newton-Raphson
    epsilon: float = Field(default=1e-6, gt=0)
    max_iterations: int = Field(default=30, ge=1)

    # Warm start guards (relative deviation against the last solved state)
    power_deviation_threshold: float = Field(default=0.1, gt=0)
    voltage_deviation_threshold: float = Field(default=0.1, gt=0)
    angle_deviation_threshold: float = Field(default=0.1, gt=0)

    # Linear solver
    pivot_tolerance: float = Field(default=1e-14, ge=0)

    # Logging
    log_level: str = "INFO"
    log_json: bool = False


settings = SolverSettings()
