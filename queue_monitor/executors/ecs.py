import logging

from botocore.exceptions import BotoCoreError, ClientError

from queue_monitor.aws.wrapper import AWSWrapper
from queue_monitor.exceptions import ExecutorError
from queue_monitor.executors.base import ScalingExecutor


class EcsExecutor(ScalingExecutor):
    """Scale an ECS service by updating its desired count."""

    def __init__(self, aws_wrapper: AWSWrapper, cluster: str, service_name: str):
        self._aws_wrapper = aws_wrapper
        self.cluster = cluster
        self.service_name = service_name

    def current_count(self) -> int:
        try:
            ecs_client = self._aws_wrapper.create_aws_client('ecs')
            service_response = ecs_client.describe_services(
                cluster=self.cluster,
                services=[self.service_name]
            )
        except (BotoCoreError, ClientError) as e:
            raise ExecutorError(f"Error describing service {self.service_name}: {e}") from e

        if not service_response['services']:
            raise ExecutorError(f"Service {self.service_name} not found in cluster {self.cluster}")

        service = service_response['services'][0]
        logging.info(f"Current ECS state - desired: {service.get('desiredCount', 0)}, "
                     f"running: {service.get('runningCount', 0)}")
        return service.get('desiredCount', 0)

    def set_count(self, target: int) -> None:
        """
        Update the ECS service with a new desired count.

        Raises:
            ExecutorError: If the service update fails
        """
        try:
            ecs_client = self._aws_wrapper.create_aws_client('ecs')
            ecs_client.update_service(
                cluster=self.cluster,
                service=self.service_name,
                desiredCount=target
            )
        except (BotoCoreError, ClientError) as e:
            raise ExecutorError(f"Error updating service {self.service_name}: {e}") from e

        logging.info(f"Updated service {self.service_name} to {target} tasks")
