from __future__ import annotations

from typing import Dict, List


FRIENDLY_TERMS: Dict[str, str] = {
    "app_name": "Quotation Engine",
    "quotation": "Cotacao do fornecedor",
    "approval": "Aprovacao",
    "revision": "Revisao",
    "comment": "Comentario",
    "vendor": "Fornecedor",
    "approver": "Aprovador",
}


STATUS_GROUPS: Dict[str, List[Dict[str, str]]] = {
    "quotation": [
        {
            "key": "draft",
            "label": "Rascunho",
            "description": "Cotacao criada pelo fornecedor e ainda nao enviada.",
        },
        {
            "key": "submitted",
            "label": "Enviada",
            "description": "Cotacao enviada e aguardando os aprovadores.",
        },
        {
            "key": "under_review",
            "label": "Em analise",
            "description": "Parte dos aprovadores ja aprovou a cotacao.",
        },
        {
            "key": "approved",
            "label": "Aprovada",
            "description": "Todos os aprovadores aprovaram a cotacao.",
        },
        {
            "key": "rejected",
            "label": "Rejeitada",
            "description": "Um aprovador rejeitou a cotacao.",
        },
        {
            "key": "revision_requested",
            "label": "Revisao solicitada",
            "description": "Revisor pediu ajustes ao fornecedor.",
        },
        {
            "key": "negotiating",
            "label": "Em negociacao",
            "description": "Fornecedor publicou uma nova versao dos termos.",
        },
    ],
    "approval": [
        {
            "key": "pending",
            "label": "Pendente",
            "description": "Aguardando decisao do aprovador.",
        },
        {
            "key": "approved",
            "label": "Aprovada",
            "description": "Aprovador aprovou a cotacao.",
        },
        {
            "key": "rejected",
            "label": "Rejeitada",
            "description": "Aprovador rejeitou a cotacao.",
        },
    ],
}


COMMENT_KIND_LABELS: Dict[str, str] = {
    "general": "Geral",
    "revision_request": "Pedido de revisao",
    "counter_offer": "Contraproposta",
    "clarification": "Esclarecimento",
}


MESSAGES: Dict[str, Dict[str, str]] = {
    "success": {
        "quotation_created": "Cotacao criada. Guarde a chave de criptografia e a chave privada.",
        "quotation_submitted": "Cotacao enviada para aprovacao.",
        "quotation_approved": "Cotacao aprovada.",
        "quotation_rejected": "Cotacao rejeitada.",
        "approvers_assigned": "Aprovadores atribuidos.",
        "revision_created": "Revisao criada com sucesso.",
        "revision_requested": "Revisao solicitada com sucesso.",
        "comment_added": "Comentario adicionado.",
        "signature_valid": "Assinatura valida: os dados da cotacao sao autenticos.",
        "signature_invalid": "Assinatura invalida: os dados da cotacao podem ter sido alterados.",
    },
    "error": {
        "action_invalid": "Acao invalida para esta operacao.",
        "already_decided": "Esta aprovacao ja foi processada.",
        "amount_invalid": "Valor informado e invalido ou excede a precisao suportada.",
        "approval_not_found": "Aprovacao nao encontrada.",
        "auth_required": "Autenticacao necessaria.",
        "comment_kind_invalid": "Tipo de comentario invalido.",
        "comment_not_found": "Comentario nao encontrado.",
        "concurrent_update": "A cotacao foi alterada por outra operacao. Recarregue e tente novamente.",
        "data_required": "Informe o texto a ser processado.",
        "empty_comment": "O comentario nao pode ser vazio.",
        "forbidden": "Voce nao possui permissao para executar esta acao.",
        "hash_algorithm_invalid": "Algoritmo de hash nao suportado. Use sha256, sha512 ou md5.",
        "invalid_key": "Chave de criptografia invalida.",
        "invalid_transition": "Esta acao nao e permitida para o status atual da cotacao.",
        "line_items_required": "Informe ao menos um item valido.",
        "line_item_invalid": "Item informado e invalido: quantidade e preco unitario devem ser numeros nao negativos dentro da precisao suportada.",
        "malformed_envelope": "Os dados codificados da cotacao estao corrompidos.",
        "no_approvers_available": "Nenhum aprovador disponivel. A cotacao foi enviada sem aprovacoes pendentes.",
        "not_found": "Registro nao encontrado.",
        "permission_denied": "Voce nao possui permissao para executar esta acao.",
        "private_key_invalid": "Chave privada invalida: informe uma chave RSA em formato PEM.",
        "quotation_not_found": "Cotacao nao encontrada.",
        "rate_limit_exceeded": "Muitas requisicoes. Tente novamente em instantes.",
        "reason_required": "Informe o motivo da solicitacao de revisao.",
        "rejection_reason_required": "Informe o motivo da rejeicao.",
        "revision_not_found": "Uma ou ambas as versoes nao foram encontradas.",
        "rfq_id_required": "Informe a RFQ da cotacao.",
        "signature_invalid": "A assinatura informada nao confere com a chave publica da cotacao.",
        "status_invalid": "Status informado e invalido.",
        "unexpected_error": "Nao foi possivel concluir a operacao. Tente novamente em instantes.",
        "validation_error": "Dados informados invalidos.",
        "version_required": "Informe as duas versoes para comparar.",
    },
}


def status_keys_for_group(group: str) -> List[str]:
    return [item["key"] for item in STATUS_GROUPS.get(group, [])]


def status_label(group: str, key: str | None) -> str:
    for item in STATUS_GROUPS.get(group, []):
        if item["key"] == key:
            return item["label"]
    return str(key or "")


def get_message(category: str, key: str, default: str | None = None) -> str:
    message = MESSAGES.get(category, {}).get(key)
    if message:
        return message
    if default is not None:
        return default
    return key


def error_message(key: str, default: str | None = None) -> str:
    return get_message("error", key, default)


def success_message(key: str, default: str | None = None) -> str:
    return get_message("success", key, default)


def frontend_bundle() -> Dict[str, object]:
    from quotation_engine.workflow.state_machine import frontend_bundle as flow_frontend_bundle

    return {
        "terms": FRIENDLY_TERMS,
        "status_groups": STATUS_GROUPS,
        "comment_kinds": COMMENT_KIND_LABELS,
        "messages": MESSAGES,
        "flow": flow_frontend_bundle(),
    }
