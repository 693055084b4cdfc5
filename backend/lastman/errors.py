from fastapi import HTTPException


def rule_error(status_code: int, code: str, message: str) -> HTTPException:
    """HTTPException carrying a machine-readable rejection code.

    Callers branch on ``detail["code"]`` (ROUND_LOCKED, TEAM_ALREADY_USED, ...);
    ``message`` is for humans.
    """
    return HTTPException(status_code=status_code, detail={"code": code, "message": message})
