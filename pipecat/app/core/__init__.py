SERVICE_NAME = "pipecat"
