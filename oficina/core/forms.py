# oficina/core/forms.py
from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, Optional

from flask import request
from flask_wtf import FlaskForm
from werkzeug.datastructures import MultiDict
from wtforms import (
    StringField, PasswordField, BooleanField, IntegerField, SelectField, TextAreaField,
)
from wtforms.fields.core import Field
from wtforms.validators import (
    DataRequired, Optional as Opt, Length, Email, Regexp
)

from oficina.core import dates
from oficina.core.errors import ServiceError, ValidationError
from oficina.core.models import (
    CASH_FLOW_TYPES, EXTRA_ROLES, GLOBAL_ROLES, MEMBER_ROLES, SERVICE_ORDER_STATUSES, SLUG_RE,
)


# =============================================================================
# Utilidades
# =============================================================================

OBRIGATORIO = "Campo obrigatório"

def _choices(values):
    return [(v, v) for v in values]

def _q2(v: Decimal) -> Decimal:
    return v.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

def parse_decimal(text) -> Optional[Decimal]:
    """
    Converte para Decimal com 2 casas aceitando vírgula ou ponto.
    Números vindos do JSON passam direto. Vazio vira None.
    """
    if text is None:
        return None
    if isinstance(text, bool):
        raise ValueError("Valor numérico inválido")
    if isinstance(text, (int, float, Decimal)):
        return _q2(Decimal(str(text)))
    s = str(text).strip()
    if s == "":
        return None
    # "1.234,56" -> "1234.56"
    s = s.replace(".", "").replace(",", ".") if s.count(",") == 1 and s.count(".") > 0 else s.replace(",", ".")
    try:
        d = Decimal(s)
    except InvalidOperation:
        raise ValueError("Valor numérico inválido")
    if not d.is_finite():
        raise ValueError("Valor numérico inválido")
    return _q2(d)


# =============================================================================
# Campos customizados
# =============================================================================

class DecimalMoneyField(Field):
    """
    Entrada textual ou numérica que vira Decimal com 2 casas.
    """
    def __init__(self, label=None, validators=None, **kwargs):
        super().__init__(label, validators, **kwargs)
        self.data = None

    def _value(self):
        return str(self.data) if isinstance(self.data, Decimal) else (self.data or "")

    def process_formdata(self, valuelist):
        if valuelist:
            try:
                self.data = parse_decimal(valuelist[0])
            except ValueError:
                self.data = None
                raise


class DayField(Field):
    """Data de calendário AAAA-MM-DD, sem fuso. Vazio vira None."""

    def _value(self):
        return self.data.isoformat() if self.data else ""

    def process_formdata(self, valuelist):
        if not valuelist:
            return
        raw = valuelist[0]
        if isinstance(raw, str) and raw.strip() == "":
            self.data = None
            return
        try:
            self.data = dates.parse_day(raw, self.name)
        except ServiceError as e:
            self.data = None
            raise ValueError(e.message)


class JsonListField(Field):
    """Lista vinda do corpo JSON, repassada como está para a camada de serviço."""

    def process_formdata(self, valuelist):
        self.data = list(valuelist)


# =============================================================================
# Base para a API JSON
# =============================================================================

class ApiForm(FlaskForm):
    """
    Form lido do corpo JSON (ou da query string nos GET).

    ``null`` no JSON conta como campo ausente para a validação, mas o nome
    fica em ``provided`` para que atualizações parciais possam limpar valores.
    """

    class Meta:
        csrf = False

    provided: frozenset = frozenset()

    @classmethod
    def load(cls, payload=None) -> "ApiForm":
        if payload is None:
            if request.method == "GET":
                payload = request.args
            else:
                payload = request.get_json(silent=True)
                if payload is None:
                    payload = {}
        if isinstance(payload, MultiDict):
            formdata = payload
        elif isinstance(payload, dict):
            formdata = MultiDict()
            for k, v in payload.items():
                if v is None:
                    continue
                formdata.setlist(k, v if isinstance(v, list) else [v])
        else:
            raise ValidationError("Corpo da requisição inválido.")
        form = cls(formdata=formdata)
        form.provided = frozenset(payload.keys())
        return form

    def validate_or_raise(self) -> "ApiForm":
        if not self.validate():
            fields = {name: str(errs[0]) for name, errs in self.errors.items() if errs}
            first = next(iter(fields.items()), ("", "Dados inválidos"))
            msg = f"{first[0]}: {first[1]}" if first[0] else first[1]
            raise ValidationError(msg, fields)
        return self

    def changes(self, mapping: Dict[str, str]) -> Dict[str, Any]:
        """{campo do form: chave do serviço} -> só o que veio no corpo."""
        return {key: getattr(self, name).data for name, key in mapping.items() if name in self.provided}


# =============================================================================
# Autenticação
# =============================================================================

class LoginForm(ApiForm):
    email = StringField("E-mail", validators=[DataRequired(OBRIGATORIO), Email("E-mail inválido"), Length(max=180)])
    password = PasswordField("Senha", validators=[DataRequired(OBRIGATORIO), Length(max=72)])
    remember = BooleanField("Manter conectado")

class ActiveOrganizationForm(ApiForm):
    organizationId = IntegerField("Organização", validators=[DataRequired(OBRIGATORIO)])


# =============================================================================
# Fluxo de caixa
# =============================================================================

class CashFlowCreateForm(ApiForm):
    type = SelectField("Tipo", choices=_choices(CASH_FLOW_TYPES), validate_choice=False,
                       validators=[DataRequired(OBRIGATORIO)])
    description = StringField("Descrição", validators=[DataRequired(OBRIGATORIO), Length(max=255)])
    value = DecimalMoneyField("Valor", validators=[DataRequired(OBRIGATORIO)])
    date = DayField("Data", validators=[Opt()])
    serviceOrderId = IntegerField("Ordem de serviço", validators=[Opt()])
    installmentsCount = IntegerField("Parcelas", default=1, validators=[Opt()])
    firstDueDate = DayField("Primeiro vencimento", validators=[Opt()])

    def validate_installmentsCount(self, field):
        # IntegerField aceitaria int(2.5) == 2 e int(True) == 1
        raw = field.raw_data[0] if field.raw_data else None
        if isinstance(raw, bool) or (isinstance(raw, float) and not raw.is_integer()):
            raise ValueError("Número de parcelas deve ser um inteiro")

class CashFlowPaidAtForm(ApiForm):
    paidAt = DayField("Pago em")

    def validate_paidAt(self, field):
        if "paidAt" not in self.provided:
            raise ValueError("Informe a data de pagamento ou vazio para desmarcar")

class CashFlowQueryForm(ApiForm):
    tab = StringField("Aba", default="all")
    dateFrom = DayField("De", validators=[Opt()])
    dateTo = DayField("Até", validators=[Opt()])
    clientId = IntegerField("Cliente", validators=[Opt()])

class CashFlowSummaryForm(ApiForm):
    dateFrom = StringField("De", validators=[DataRequired(OBRIGATORIO)])
    dateTo = StringField("Até", validators=[DataRequired(OBRIGATORIO)])
    mode = StringField("Modo", default="previsao")


# =============================================================================
# Cadastros
# =============================================================================

class ClientForm(ApiForm):
    name = StringField("Nome", validators=[DataRequired(OBRIGATORIO), Length(max=180)])
    phone = StringField("Telefone", validators=[DataRequired(OBRIGATORIO), Length(max=40)])
    email = StringField("E-mail", validators=[Opt(), Email("E-mail inválido"), Length(max=180)])
    document = StringField("CPF/CNPJ", validators=[Opt(), Length(max=20)])
    notes = TextAreaField("Observações", validators=[Opt()])

class ClientUpdateForm(ClientForm):
    name = StringField("Nome", validators=[Opt(), Length(max=180)])
    phone = StringField("Telefone", validators=[Opt(), Length(max=40)])

CLIENT_MAP = {"name": "name", "phone": "phone", "email": "email", "document": "document", "notes": "notes"}

class ServiceOrderForm(ApiForm):
    clientId = IntegerField("Cliente", validators=[DataRequired(OBRIGATORIO)])
    problemDescription = TextAreaField("Problema", validators=[DataRequired(OBRIGATORIO)])
    estimatedValue = DecimalMoneyField("Valor estimado", validators=[Opt()])

class ServiceOrderUpdateForm(ApiForm):
    status = SelectField("Status", choices=_choices(SERVICE_ORDER_STATUSES), validate_choice=False,
                         validators=[Opt()])
    servicesPerformed = TextAreaField("Serviços realizados", validators=[Opt()])
    partsUsed = TextAreaField("Peças utilizadas", validators=[Opt()])
    estimatedValue = DecimalMoneyField("Valor estimado", validators=[Opt()])
    finalValue = DecimalMoneyField("Valor final", validators=[Opt()])

SERVICE_ORDER_MAP = {
    "status": "status",
    "servicesPerformed": "services_performed",
    "partsUsed": "parts_used",
    "estimatedValue": "estimated_value",
    "finalValue": "final_value",
}

class ServiceItemForm(ApiForm):
    name = StringField("Nome", validators=[DataRequired(OBRIGATORIO), Length(max=180)])
    description = TextAreaField("Descrição", validators=[Opt()])
    defaultPrice = DecimalMoneyField("Preço padrão", default=Decimal("0.00"), validators=[Opt()])

class ServiceItemUpdateForm(ServiceItemForm):
    name = StringField("Nome", validators=[Opt(), Length(max=180)])
    active = BooleanField("Ativo")

SERVICE_ITEM_MAP = {
    "name": "name", "description": "description", "defaultPrice": "default_price", "active": "active",
}

class BudgetForm(ApiForm):
    clientId = IntegerField("Cliente", validators=[DataRequired(OBRIGATORIO)])
    serviceOrderId = IntegerField("Ordem de serviço", validators=[Opt()])
    notes = TextAreaField("Observações", validators=[Opt()])
    items = JsonListField("Itens")

    def validate_items(self, field):
        if not field.data:
            raise ValueError("Adicione pelo menos um item")
        if not all(isinstance(i, dict) for i in field.data):
            raise ValueError("Item inválido")


# =============================================================================
# Organizações e usuários
# =============================================================================

_SLUG = Regexp(SLUG_RE, message="Slug deve conter apenas letras minúsculas, números e hífens")

class OrganizationForm(ApiForm):
    name = StringField("Nome", validators=[DataRequired(OBRIGATORIO), Length(max=120)])
    slug = StringField("Slug", validators=[DataRequired(OBRIGATORIO), Length(max=80), _SLUG])

class MemberAddForm(ApiForm):
    userId = IntegerField("Usuário", validators=[DataRequired(OBRIGATORIO)])
    role = SelectField("Papel", choices=_choices(MEMBER_ROLES), default="member", validate_choice=False)

class MemberRoleForm(ApiForm):
    role = SelectField("Papel", choices=_choices(MEMBER_ROLES), validate_choice=False,
                       validators=[DataRequired(OBRIGATORIO)])
    extraRoles = JsonListField("Papéis extras")

    def validate_extraRoles(self, field):
        invalid = [r for r in field.data if r not in EXTRA_ROLES]
        if invalid:
            raise ValueError(f"Papel extra inválido: {', '.join(map(str, invalid))}")

class InviteForm(ApiForm):
    email = StringField("E-mail", validators=[DataRequired(OBRIGATORIO), Email("E-mail inválido"), Length(max=180)])
    role = SelectField("Papel", choices=_choices(MEMBER_ROLES), default="member", validate_choice=False)

class UserCreateForm(ApiForm):
    name = StringField("Nome", validators=[DataRequired(OBRIGATORIO), Length(max=120)])
    username = StringField("Usuário", validators=[Opt(), Length(min=3, max=30)])
    email = StringField("E-mail", validators=[DataRequired(OBRIGATORIO), Email("E-mail inválido"), Length(max=180)])
    password = PasswordField("Senha", validators=[DataRequired(OBRIGATORIO), Length(min=6, max=72)])
    role = SelectField("Perfil", choices=_choices(GLOBAL_ROLES), default="user", validate_choice=False)

class UserEditForm(ApiForm):
    name = StringField("Nome", validators=[Opt(), Length(max=120)])
    email = StringField("E-mail", validators=[Opt(), Email("E-mail inválido"), Length(max=180)])
    role = SelectField("Perfil", choices=_choices(GLOBAL_ROLES), validate_choice=False, validators=[Opt()])

USER_MAP = {"name": "name", "email": "email", "role": "role"}

class SetPasswordForm(ApiForm):
    newPassword = PasswordField("Nova senha", validators=[DataRequired(OBRIGATORIO), Length(min=6, max=72)])

class BanForm(ApiForm):
    reason = StringField("Motivo", validators=[Opt(), Length(max=200)])
