"""
Costeo por Promedio Ponderado
=============================

Funciones puras: no leen ni escriben base de datos.

- ENTRADA: el costo promedio se mezcla con el costo de la entrada
- SALIDA: el costo promedio NO cambia; la salida se valoriza al promedio vigente
- TRANSFERENCIA: el destino recibe al costo promedio del origen
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

CANTIDAD = Decimal('0.0001')
COSTO_UNITARIO = Decimal('0.0001')
IMPORTE = Decimal('0.01')


def q_cantidad(valor) -> Decimal:
    return Decimal(str(valor)).quantize(CANTIDAD, rounding=ROUND_HALF_UP)


def q_costo(valor) -> Decimal:
    return Decimal(str(valor)).quantize(COSTO_UNITARIO, rounding=ROUND_HALF_UP)


def q_importe(valor) -> Decimal:
    return Decimal(str(valor)).quantize(IMPORTE, rounding=ROUND_HALF_UP)


def calcular_costo_promedio(
    cantidad_actual: Decimal,
    costo_promedio_actual: Decimal,
    cantidad_entrada: Decimal,
    costo_entrada: Decimal
) -> Decimal:
    """
    Calcula el costo promedio ponderado tras una ENTRADA.

    Fórmula: (cantidad_actual * costo_actual + cantidad_entrada * costo_entrada) / (cantidad_actual + cantidad_entrada)

    Si la cantidad resultante es cero se devuelve el costo de la entrada.
    """
    nueva_cantidad = cantidad_actual + cantidad_entrada
    if nueva_cantidad == 0:
        return q_costo(costo_entrada)

    total_actual = cantidad_actual * costo_promedio_actual
    total_entrada = cantidad_entrada * costo_entrada
    return q_costo((total_actual + total_entrada) / nueva_cantidad)


@dataclass(frozen=True)
class ResultadoCosteo:
    """Lo que se congela en el movimiento al afectar el saldo"""
    costo_unitario: Decimal
    costo_total: Decimal
    stock_anterior: Decimal
    stock_nuevo: Decimal
    costo_promedio_resultante: Decimal


def costear_entrada(cantidad_actual: Decimal, costo_promedio_actual: Decimal,
                    cantidad: Decimal, costo_unitario: Decimal) -> ResultadoCosteo:
    costo_unitario = q_costo(costo_unitario)
    return ResultadoCosteo(
        costo_unitario=costo_unitario,
        costo_total=q_importe(cantidad * costo_unitario),
        stock_anterior=cantidad_actual,
        stock_nuevo=q_cantidad(cantidad_actual + cantidad),
        costo_promedio_resultante=calcular_costo_promedio(
            cantidad_actual, costo_promedio_actual, cantidad, costo_unitario
        ),
    )


def costear_salida(cantidad_actual: Decimal, costo_promedio_actual: Decimal, cantidad: Decimal) -> ResultadoCosteo:
    # Costo de lo vendido, no precio de venta
    costo_unitario = q_costo(costo_promedio_actual)
    return ResultadoCosteo(
        costo_unitario=costo_unitario,
        costo_total=q_importe(cantidad * costo_unitario),
        stock_anterior=cantidad_actual,
        stock_nuevo=q_cantidad(cantidad_actual - cantidad),
        costo_promedio_resultante=costo_unitario,
    )


def costear_sin_efecto(cantidad_actual: Decimal, costo_promedio_actual: Decimal, cantidad: Decimal) -> ResultadoCosteo:
    """Tipos solo de auditoría: stock_anterior == stock_nuevo"""
    costo_unitario = q_costo(costo_promedio_actual)
    return ResultadoCosteo(
        costo_unitario=costo_unitario,
        costo_total=q_importe(cantidad * costo_unitario),
        stock_anterior=cantidad_actual,
        stock_nuevo=cantidad_actual,
        costo_promedio_resultante=costo_unitario,
    )
