from typing import Any, Optional
from pydantic import ValidationError
from difygen.dsl.schema import DifyDSL
from difygen.log_output.log import log
from difygen.validator.validator import DSLValidator
from difygen.workflow_graph.state import RepairState


class DSLChecker:
    """
    パースしたDSLを検証するノード。
    validate=Falseの場合はスキーマへの変換だけを行い、トポロジーや参照は確認しない。
    """
    def __init__(self, validator: Optional[DSLValidator] = None, validate: bool = True):
        self.validator = validator or DSLValidator()
        self.validate = validate

    def __call__(self, state: RepairState) -> dict[str, Any]:
        if not self.validate:
            try:
                dsl = DifyDSL.model_validate(state.data)
            except ValidationError as e:
                errors = [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
                return self._failed(errors)
            log("success", "DSLを受け入れました（検証なし）")
            return {"dsl": dsl, "success": True, "errors": [], "node_history": ["validate"]}

        result = self.validator.validate(state.data)
        if result.valid:
            for warning in result.warnings:
                log("warning", f"DSLの警告: {warning}")
            log("success", "DSLの検証に成功しました")
            return {"dsl": result.dsl, "success": True, "errors": [], "node_history": ["validate"]}

        # strictで警告だけが原因の場合は警告を返す
        issues = result.errors or result.warnings
        return self._failed([str(issue) for issue in issues])

    def _failed(self, errors: list[str]) -> dict[str, Any]:
        log("warning", f"DSLの検証に失敗しました（{len(errors)}件）:\n" + "\n".join(errors))
        return {"errors": errors, "failed_stage": "validate", "error_history": errors, "node_history": ["validate"]}
