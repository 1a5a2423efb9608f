from dependency_injector import containers, providers

from order_intake.application.cancel_order import CancelOrderUseCase
from order_intake.application.order_queries import OrderQueries
from order_intake.application.process_outbox_events import ProcessOutboxEventsUseCase
from order_intake.application.receive_webhook_order import ReceiveWebhookOrderUseCase
from order_intake.application.update_order_status import UpdateOrderStatusUseCase
from order_intake.core.signature import WebhookVerifier
from order_intake.infrastructure.container import InfrastructureContainer


class ApplicationContainer(containers.DeclarativeContainer):
    config = providers.Configuration()
    infrastructure_container = providers.Container[InfrastructureContainer](
        InfrastructureContainer,
        config=config.infrastructure,
    )

    webhook_verifier = providers.Singleton[WebhookVerifier](
        WebhookVerifier,
        secret=config.webhook.secret,
        tolerance_seconds=config.webhook.tolerance_seconds,
    )

    receive_webhook_order_use_case = providers.Singleton[ReceiveWebhookOrderUseCase](
        ReceiveWebhookOrderUseCase,
        unit_of_work=infrastructure_container.unit_of_work,
        verifier=webhook_verifier,
    )
    update_order_status_use_case = providers.Singleton[UpdateOrderStatusUseCase](
        UpdateOrderStatusUseCase, unit_of_work=infrastructure_container.unit_of_work
    )
    cancel_order_use_case = providers.Singleton[CancelOrderUseCase](
        CancelOrderUseCase, unit_of_work=infrastructure_container.unit_of_work
    )
    order_queries = providers.Singleton[OrderQueries](
        OrderQueries, unit_of_work=infrastructure_container.unit_of_work
    )
    process_outbox_events_use_case = providers.Singleton[ProcessOutboxEventsUseCase](
        ProcessOutboxEventsUseCase,
        unit_of_work=infrastructure_container.unit_of_work,
        kafka_producer=infrastructure_container.kafka_producer,
        batch_size=config.outbox.batch_size,
    )
