"""Textos enviados a contatos e atendentes (PT-BR, formatação WhatsApp)."""

from __future__ import annotations

from dataclasses import dataclass

from central_atendimento.config.settings import Settings
from central_atendimento.domain.sectors import SECTORS, Sector, sector_name
from central_atendimento.utils.ids import display_id

_RATING_SCALE = (
    "🌟 *5 Estrelas*: Excelente\n"
    "⭐ *4 Estrelas*: Muito Bom\n"
    "✨ *3 Estrelas*: Bom\n"
    "⚡ *2 Estrelas*: Regular\n"
    "💔 *1 Estrela*: Muito Ruim"
)


def _code(code: str | None) -> str:
    return code or "N/A"


def contact_label(name: str | None, contact_id: str) -> str:
    return name or display_id(contact_id)


@dataclass(frozen=True, slots=True)
class MessageCatalog:
    """Modelos de mensagens parametrizados pelos comandos configurados."""

    company: str
    close_command: str
    confirm_command: str
    decline_command: str
    menu_command: str
    transfer_command: str
    avg_service_minutes: int

    @classmethod
    def from_settings(cls, settings: Settings) -> MessageCatalog:
        return cls(
            company=settings.company_name,
            close_command=settings.close_command,
            confirm_command=settings.confirm_command,
            decline_command=settings.decline_command,
            menu_command=settings.menu_command,
            transfer_command=settings.transfer_command,
            avg_service_minutes=settings.avg_service_minutes,
        )

    # === Menu e fila ===

    def menu(self) -> str:
        lines = []
        for sector in SECTORS.values():
            line = f"*{sector.code}* - {sector.name} {sector.emoji}".rstrip()
            if sector.menu_note:
                line += f" ({sector.menu_note})"
            lines.append(line)
        return (
            f"👋 Olá! Seja bem-vindo(a) à *{self.company}*!\n\n"
            "Por favor, escolha o setor desejado para que possamos te atender "
            "da melhor forma:\n\n" + "\n".join(lines) + "\n\n"
            "Digite o *número do setor* para continuar."
        )

    def outside_hours(self, sector: Sector) -> str:
        hours = sector.hours.describe() if sector.hours else ""
        return (
            f"⏰ Olá! Nosso setor de {sector.name} da *{self.company}* funciona de "
            f"segunda a sexta, das {hours}.\n"
            "No momento, estamos fora do horário de atendimento. Por favor, retorne "
            "durante nosso expediente ou escolha outra opção do menu."
        )

    def estimate_minutes(self, position: int) -> int:
        return position * self.avg_service_minutes

    def queued(self, sector_code: str, position: int) -> str:
        return (
            f"⏳ No momento, todos os nossos atendentes do setor *{sector_name(sector_code)}* "
            "estão ocupados.\n"
            f"Você está na posição *{position}* da fila. Aguarde um instante, a estimativa "
            f"de tempo de espera é de *aproximadamente {self.estimate_minutes(position)} "
            "minutos*.\n\n"
            "Pode fechar o WhatsApp se desejar. Nós te avisaremos quando for a sua vez de "
            f"ser atendido(a) pela *{self.company}*!"
        )

    def still_queued(self, sector_code: str, position: int) -> str:
        return (
            f"Você já está na fila para o setor *{sector_name(sector_code)}* na posição "
            f"*{position}*.\n"
            "Aguarde um instante, a estimativa de tempo de espera é de "
            f"*aproximadamente {self.estimate_minutes(position)} minutos*."
        )

    # === Início de atendimento ===

    def service_started_contact(self, code: str, sector_code: str, attendant_name: str) -> str:
        return (
            f"✨ *Atendimento iniciado na {self.company}!* ✨\n"
            f"*Código do Atendimento:* {code}\n"
            f"Você agora está sendo atendido(a) no setor *{sector_name(sector_code)}* pelo "
            f"atendente *{attendant_name}*.\n"
            "Por favor, aguarde a resposta do nosso especialista."
        )

    def service_started_attendant(
        self, code: str, sector_code: str, contact_name: str | None, contact_id: str
    ) -> str:
        return (
            f"📞 *NOVO ATENDIMENTO - {self.company}* 📞\n"
            f"*Código do Atendimento:* {code}\n"
            f"*Cliente:* {contact_label(contact_name, contact_id)} ({display_id(contact_id)})\n"
            f"*Setor:* {sector_name(sector_code)}\n\n"
            "Pode iniciar o atendimento normalmente. Para finalizar esta conversa, digite "
            f"*{self.close_command}*."
        )

    # === Durante o atendimento ===

    def contact_cannot_close(self) -> str:
        return (
            "Para encerrar o atendimento, por favor, *solicite ao atendente* que finalize a "
            "conversa. Ele fará o processo por você."
        )

    def in_service_menu_notice(self, sector_code: str) -> str:
        return (
            f"Você está em um atendimento ativo no setor *{sector_name(sector_code)}*.\n"
            "Para finalizar esta conversa, por favor, *solicite ao atendente* que finalize o "
            "atendimento.\n"
            "Caso contrário, continue enviando suas mensagens para o atendente."
        )

    def queued_menu_notice(self, sector_code: str, position: int) -> str:
        return (
            f"Você está aguardando na fila do setor *{sector_name(sector_code)}* "
            f"(posição *{position}*). Assim que um atendente estiver livre, a conversa "
            "começa automaticamente."
        )

    def awaiting_confirmation_contact(self, code: str | None) -> str:
        return (
            "Você está aguardando uma confirmação do atendente para o atendimento "
            f"(Código: {_code(code)}). Por favor, aguarde."
        )

    def no_active_service(self) -> str:
        return (
            "Nenhum atendimento ativo no momento. Quando um cliente for direcionado a você, "
            "as mensagens aparecerão aqui."
        )

    # === Encerramento com confirmação ===

    def close_requested_attendant(self, contact_name: str, code: str | None) -> str:
        return (
            f"Você pediu para encerrar o atendimento do cliente {contact_name} "
            f"(Código: {_code(code)}). Tem certeza?\n"
            f"Digite *{self.confirm_command}* para confirmar ou *{self.decline_command}* "
            "para cancelar."
        )

    def close_requested_contact(self, code: str | None) -> str:
        return (
            "Seu atendente iniciou o processo de encerramento do atendimento "
            f"(Código: {_code(code)}). Por favor, aguarde a confirmação."
        )

    def close_confirm_reprompt(self) -> str:
        return (
            f"Por favor, digite *{self.confirm_command}* para confirmar o encerramento ou "
            f"*{self.decline_command}* para cancelar."
        )

    def close_confirmed_attendant(self, contact_name: str, code: str | None) -> str:
        return (
            f"✅ Confirmação recebida! Finalizando atendimento para {contact_name} "
            f"(Código: {_code(code)})."
        )

    def close_declined_attendant(self, code: str | None) -> str:
        return (
            f"❌ Comando de encerrar cancelado para o atendimento (Código: {_code(code)}). "
            "O atendimento continua."
        )

    def close_declined_contact(self, code: str | None) -> str:
        return (
            "Seu atendente cancelou o pedido de encerramento do atendimento "
            f"(Código: {_code(code)}). O atendimento continua normalmente."
        )

    # === Encerramento e avaliação ===

    def service_finished_rating_prompt(self, code: str | None) -> str:
        return (
            "✅ *Atendimento Finalizado!* ✅\n\n"
            f"*Código do Atendimento:* {_code(code)}\n"
            f"Agradecemos por entrar em contato com a *{self.company}*!\n\n"
            "✨ *Sua Opinião Vale Ouro!* ✨\n"
            "Por favor, avalie seu atendimento com uma nota de *1 a 5 estrelas*.\n\n"
            f"{_RATING_SCALE}\n\n"
            "Basta digitar o número correspondente à sua experiência."
        )

    def inactivity_closed(self, code: str | None) -> str:
        return (
            f"😴 Seu atendimento na *{self.company}* (Código: {_code(code)}) foi encerrado "
            "por inatividade.\n"
            "Se precisar de ajuda novamente, basta enviar uma nova mensagem!"
        )

    def admin_closed(self, code: str | None) -> str:
        return (
            f"Seu atendimento na *{self.company}* (Código: {_code(code)}) foi encerrado pela "
            "nossa equipe. Se precisar de ajuda novamente, basta enviar uma nova mensagem!"
        )

    def service_closed_attendant(
        self, contact_name: str, code: str | None, sector_code: str | None
    ) -> str:
        return (
            f"🛑 Atendimento encerrado para o cliente {contact_name} (Código: {_code(code)}) "
            f"no setor *{sector_name(sector_code)}*."
        )

    def rating_thanks(self, rating: int) -> str:
        return (
            f"🙏 Obrigado(a) pela sua avaliação de {rating} estrelas na *{self.company}*! "
            "Sua opinião nos ajuda a melhorar."
        )

    def rating_invalid(self) -> str:
        return "⚠️ Por favor, envie uma nota válida de 1 a 5 estrelas."

    def rating_cancelled(self) -> str:
        return "Sua avaliação foi cancelada."

    def rating_expired(self, code: str | None) -> str:
        return (
            f"⏰ Tempo de avaliação esgotado para o atendimento (Código: {_code(code)}).\n"
            "Se precisar de ajuda novamente, por favor, envie uma nova mensagem."
        )

    # === Transferência ===

    def transfer_invalid_sector(self) -> str:
        options = "\n".join(f"*{s.code}* - {s.name}" for s in SECTORS.values())
        return (
            f"❌ Setor inválido. Digite: {self.transfer_command} <número_do_setor>\n"
            f"Setores disponíveis:\n{options}\n"
            f"Exemplo: {self.transfer_command} 1"
        )

    def transfer_same_sector(self, sector_code: str) -> str:
        return f"⚠️ O cliente já está no setor *{sector_name(sector_code)}*."

    def transfer_outside_hours(self, sector: Sector) -> str:
        hours = sector.hours.describe() if sector.hours else ""
        return (
            f"⏰ O setor de {sector.name} está fora do horário de atendimento "
            f"(segunda a sexta, das {hours}).\n"
            "Por favor, escolha outro setor ou tente novamente durante o horário comercial."
        )

    def transfer_done_attendant(
        self, contact_name: str, from_sector: str | None, to_sector: str, code: str | None
    ) -> str:
        return (
            f"✅ Cliente {contact_name} transferido do setor *{sector_name(from_sector)}* "
            f"(Código: {_code(code)}) para o setor *{sector_name(to_sector)}*."
        )

    def transfer_done_contact(
        self, from_sector: str | None, to_sector: str, code: str | None
    ) -> str:
        return (
            f"🔄 Seu atendimento foi transferido do setor *{sector_name(from_sector)}* "
            f"(Código: {_code(code)}) para o setor *{sector_name(to_sector)}*.\n"
            f"Aguarde, você será atendido em breve pela *{self.company}*."
        )

    def transfer_failed(self) -> str:
        return "❌ Não foi possível transferir agora. Tente novamente em instantes."
